"""Full data restore sidecar.

Migrates a player's world data from their premium (online-mode) UUID to
the cracked (offline-mode) UUID they connect with, and caches their skin
so it can be re-applied on every join.
"""
