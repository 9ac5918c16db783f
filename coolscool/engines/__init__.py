"""
Engines: mastery ledger, proficiency banding and question selection.
"""
