import asyncio

import dotenv

from particle_cloud import EventSourceConfig, EventSourceObserver, ParticleCloud

dotenv.load_dotenv()


class PrintingObserver(EventSourceObserver):
    def started(self, source):
        print("-> stream abierto:", source.url)

    def stopped(self, source):
        print("-> stream cerrado")

    def received_event(self, event, source):
        print(f"[{event.published:%H:%M:%S}] {event.core_id} {event.name} = {event.data!r}")


async def main() -> None:
    cloud = ParticleCloud()
    config = EventSourceConfig(filter_prefix="temp")  # solo eventos que empiecen por "temp"

    async with cloud.create_event_source(config, observer=PrintingObserver()) as source:
        source.start()
        await asyncio.sleep(60)


asyncio.run(main())
