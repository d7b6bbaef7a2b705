import dotenv

from particle_cloud import EventSourceConfig, ParticleCloud

dotenv.load_dotenv()

cloud = ParticleCloud()

# Los eventos públicos exigen un prefijo de filtro.
config = EventSourceConfig(public_events=True, filter_prefix="spark/status")

for i, event in enumerate(cloud.stream_events(config)):
    print(event.to_dict())
    if i >= 9:
        break

cloud.close()
