import os

import dotenv
import httpx

dotenv.load_dotenv()

url = "https://api.particle.io/v1/devices/events"
token = os.environ["PARTICLE_ACCESS_TOKEN"]

headers = {
    "Authorization": f"Bearer {token}",
    "Accept": "text/event-stream",
}

with httpx.Client(timeout=httpx.Timeout(30.0, read=None)) as client:
    with client.stream("GET", url, headers=headers) as r:
        print("status:", r.status_code)
        print("headers:", dict(r.headers))
        for i, chunk in enumerate(r.iter_bytes()):
            print("i=", i, "len=", len(chunk))
            print("repr=", repr(chunk))   # chunks crudos, tal como llegan del servidor
            if i >= 30:
                break
