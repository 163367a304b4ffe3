"""
search: situation-coverage search
=================================

Modules
-------
coverage_space
    Criterion bucketing and the quota-capped coverage grid.
search_loop
    :class:`SearchLoop` online accept/reject search over external seeds.
seed_files
    Seed files and coverage matrix dumps.
"""
