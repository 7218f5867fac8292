"""
Engines: consolidation scoring, level evaluation, weekly payments and notifications.
"""
