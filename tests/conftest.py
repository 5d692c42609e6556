import os
from pathlib import Path

# settings reads its JSON file at import time; point it at the shipped example.
os.environ.setdefault(
    "SENDVISION_CONFIG",
    str(Path(__file__).resolve().parent.parent / "config.example.json"),
)
