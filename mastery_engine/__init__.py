"""
bloom-mastery-engine: adaptive mastery estimation and scheduling.

Estimates per-topic, per-Bloom-level mastery from graded responses and uses
it to calibrate confidence, schedule reviews, recommend progression and
infer mastery of related topics through a knowledge graph.
"""

__version__ = "1.0.0"
