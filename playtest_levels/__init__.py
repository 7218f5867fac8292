"""
PlayTest Levels - mastery scoring and level progression service.
"""
