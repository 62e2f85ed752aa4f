"""Aggregation module for listening-test analytics.

Reads the full answer history and produces snapshots (quality scores,
win rates, matchup tables). Never mutates answers or the catalog.
"""
