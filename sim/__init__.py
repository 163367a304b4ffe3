"""
sim: traffic simulation core
============================

Modules
-------
traffic_policy
    :class:`SimPolicy` tunable constants and small decision helpers.
physics
    Angles, distances, rectangles and line-crossing projection.
network
    :class:`RoadNetwork` of roads, junctions, obstacles and road markings.
map_builder
    Seeded procedural map generation and map measurements.
vehicle
    :class:`Vehicle` state and waypoint following.
context
    :class:`SimContext` per-run clock, RNG and vehicle registry.
junction_arbiter
    Exclusive junction leases and exit selection.
accident_oracle
    Per-tick accident classification, accident log and summary files.
world
    :class:`World` run loop with fault injection.
batch
    Seed-file replays, map metrics and summary comparison.
"""
