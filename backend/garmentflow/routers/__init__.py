# Routers package — Thin Controllers (SRP / DIP)
from garmentflow.routers import (
    materials,
    production_batches,
    stage_tasks,
    sub_batches,
)

__all__ = [
    "materials",
    "production_batches",
    "stage_tasks",
    "sub_batches",
]
