"""
Business website intelligence pipeline.

Acquires text from a business website (direct fetch, reader proxy or a
multi-page crawl), extracts a structured profile with an injected completion
oracle, and merges it into a stored profile without losing curated data.

Usage:
    from bizintel.services.website_intelligence import WebsiteIntelligenceService
    from bizintel.llm.llm_client import LLMClient

    service = WebsiteIntelligenceService(oracle=LLMClient())
    response = service.scrape_website_sync("acme-limo.com")
"""

__version__ = "0.1.0"
