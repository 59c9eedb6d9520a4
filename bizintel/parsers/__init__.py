"""
Parsers module for page discovery.

This module contains parsers for:
- sitemap_parser: sitemap.xml and sitemap-index parsing
"""

from .sitemap_parser import SitemapParser

__all__ = ["SitemapParser"]
