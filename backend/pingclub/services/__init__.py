"""
Services Layer

Competition logic that:
- Accepts domain inputs (ids, option structs, a CompetitionRepository)
- Returns domain outputs (models, dataclasses, dicts)
- Does NOT depend on HTTP request/response objects
- Raises pingclub.errors.CompetitionError subclasses on refusal
"""
