"""Database seeder for demo and local development.

Loads a JSON seed file, wipes existing matches and commentary, and writes
fresh rows whose commentary timestamps sit in the near future. The replay
engine then releases them to subscribers as the clock passes each one.

Usage:
    python -m matchfeed.seed                 # uses Settings.seed_data_file
    python -m matchfeed.seed data/seed.json
"""
