from particle_cloud import EventSourceConfig, ParticleAPIError, ParticleCloud

try:
    cloud = ParticleCloud(access_token="anyway")
    for event in cloud.stream_events(EventSourceConfig(device_id="0123456789abcdef")):
        print(event)
except ParticleAPIError as e:
    if e.is_auth_error:
        print("Check your PARTICLE_ACCESS_TOKEN.")
    elif e.is_server_error:
        print(f"Server error {e.status_code}, consider retrying.")
    else:
        print(e.to_dict())
