"""
sim/context.py
==============
Explicit simulation context passed into every arbiter and oracle call.

Holds what would otherwise be process-wide state: the road network, the
vehicle table (in registration order), the tick counter and the run PRNG
seeded from the internal seed.
"""

from __future__ import annotations

import random
from typing import Dict, List, Optional

from sim.network import RoadNetwork
from sim.physics import Point2
from sim.vehicle import Vehicle

MASK_64 = (1 << 64) - 1


class SimContext:
    """Scheduler clock, entity tables and seeded randomness for one run."""

    def __init__(
        self,
        network: RoadNetwork,
        *,
        internal_seed: int,
        external_seed: int,
        target: Optional[Point2] = None,
    ) -> None:
        self.network = network
        self.internal_seed = internal_seed
        self.external_seed = external_seed
        self.target = target
        self.vehicles: Dict[int, Vehicle] = {}
        self.rng = random.Random(internal_seed & MASK_64)
        self.tick = 0
        self.terminated = False
        self.termination_reason = ""

    # ── scheduler ─────────────────────────────────────────────────────────
    def now(self) -> int:
        return self.tick

    def step(self) -> int:
        self.tick += 1
        return self.tick

    def terminate(self, reason: str) -> None:
        if not self.terminated:
            self.terminated = True
            self.termination_reason = reason

    # ── randomness ────────────────────────────────────────────────────────
    def random_uniform(self) -> float:
        return self.rng.random()

    def random_int(self, n: int) -> int:
        """Uniform integer in ``[0, n)``."""
        return self.rng.randrange(n)

    # ── entities ──────────────────────────────────────────────────────────
    def add_vehicle(self, vehicle: Vehicle) -> None:
        if vehicle.id in self.vehicles:
            raise ValueError(f"vehicle id {vehicle.id} already registered")
        self.vehicles[vehicle.id] = vehicle

    def ordered_vehicles(self) -> List[Vehicle]:
        return list(self.vehicles.values())

    @property
    def ego(self) -> Optional[Vehicle]:
        for vehicle in self.vehicles.values():
            if vehicle.is_ego:
                return vehicle
        return None
