"""
Hierarchical authorization engine for the Union → Conference → Church → Team platform.
"""
