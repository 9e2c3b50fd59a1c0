"""
SkillGate: test access entitlements and timed test sessions.
"""
