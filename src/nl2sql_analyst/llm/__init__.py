"""Language understanding for the analyst.

- base: the `TextUnderstanding` protocol
- pydantic_agent: PydanticAI implementation
- fallbacks: deterministic output used when the model is unavailable
"""
