import logging

from particle_cloud import StreamParser

logging.basicConfig(level=logging.DEBUG)

raw = (
    ":ok\n\n"
    "event: temp\n"
    'data: {"data":"21.5","ttl":60,"published_at":"2016-12-25T10:00:00.000Z","coreid":"abc123"}\n\n'
    "event: broken\n"
    "data: {not json}\n\n"
)

parser = StreamParser()

# Trocea el stream en fragmentos pequeños para ver cómo avanza la máquina de estados.
for i in range(0, len(raw), 9):
    piece = raw[i:i + 9]
    events = parser.feed(piece)
    print(f"{piece!r:<14} state={parser.state.name:<22} pending={parser.pending!r}")
    for event in events:
        print("   ->", event.to_dict())
