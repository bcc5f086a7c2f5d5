"""
Storefront Analytics Engine

Time-bucketed business metrics with bot and abuse filtering.
"""
