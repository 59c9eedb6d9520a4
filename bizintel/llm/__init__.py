"""
LLM layer for structured profile extraction.

This package contains:
- llm_client: LiteLLM-backed CompletionOracle with model fallback
- extraction_schemas: per-mode field schemas loaded from extraction_schemas.yaml
- prompt_loader: versioned prompt files with content hashing
- structured_extractor: prompt building, output checking, retry and scoring

Submodules are imported directly (`from bizintel.llm.llm_client import LLMClient`)
so that importing the extractor does not pull in LiteLLM.
"""
