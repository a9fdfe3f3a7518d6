"""Temporal replay of scheduled commentary.

Seeded commentary rows carry ``created_at`` timestamps spread over the
match's future. The ReplayEngine polls for rows whose timestamp has just
passed and releases them to the match's subscribers, staggered across the
poll window so a burst reads like a live feed.
"""
