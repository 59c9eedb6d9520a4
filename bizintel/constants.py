"""
Global constants for the website intelligence pipeline.

Centralizes keyword lists, character budgets and timeouts used throughout
acquisition and extraction for easier tuning.
"""

# Acquisition budgets (characters)
PER_PAGE_CHAR_BUDGET = 8000  # Generic page cap in the multi-page aggregate
DETAIL_PAGE_CHAR_BUDGET = 15000  # Fleet/menu/service/team pages carry the specifics
TOTAL_CHAR_BUDGET = 60000  # Hard cap on the whole aggregate
DIRECT_TEXT_CAP = 25000  # Single-page (direct/proxy) text cap
ORACLE_INPUT_BUDGET = 40000  # Content handed to the extraction oracle

# Acceptance floors (characters)
MIN_DIRECT_CHARS = 500  # Direct fetch of the seed
MIN_PROXY_CHARS = 100  # Reader proxy output of the seed
MIN_PAGE_CHARS = 500  # Each crawled page
MIN_AGGREGATE_CHARS = 500  # Multi-page aggregate (also a partial one)

# Discovery caps
MAX_SITEMAP_URLS = 20
MAX_PAGES = 12
COMMON_PATH_THRESHOLD = 3  # Add guessed paths when discovery found this many or fewer

# Time budgets (seconds)
DEFAULT_DEADLINE_SECONDS = 60
DIRECT_FETCH_TIMEOUT_SECONDS = 15
PROXY_FETCH_TIMEOUT_SECONDS = 30
PAGE_FETCH_TIMEOUT_SECONDS = 12
DISCOVERY_TIMEOUT_SECONDS = 5  # sitemap.xml / robots.txt requests
ORACLE_TIMEOUT_SECONDS = 45
ORACLE_WORKERS = 4  # Threads running blocking oracle calls per extractor

# Concurrency
MAX_CRAWL_CONCURRENCY = 12

# User agents
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
BOT_USER_AGENT = "Mozilla/5.0 (compatible; BizIntelBot/1.0)"

# Response classification
BLOCKED_STATUS_CODES = {403, 429}  # plus every status >= 500
CHALLENGE_MARKERS = [
    "/cdn-cgi/challenge-platform/",
    "__cf$cv$params",
    "cf-chl-",
    "checking your browser",
    "verify you are human",
    "ddos protection",
    "attention required! | cloudflare",
]
NOT_FOUND_MARKERS = [
    "page not found",
    "404 not found",
    "404 error",
    "this page doesn't exist",
    "this page does not exist",
]

# Sitemap lookup order (tier 1)
SITEMAP_PATHS = ["/sitemap.xml", "/sitemap_index.xml", "/sitemap-index.xml"]

# Guessed paths for sites that expose no sitemap and few links (tier 4)
COMMON_BUSINESS_PATHS = [
    "/about",
    "/about-us",
    "/services",
    "/our-services",
    "/fleet",
    "/fleet-standard",
    "/vehicles",
    "/cars",
    "/menu",
    "/our-menu",
    "/food",
    "/pricing",
    "/prices",
    "/rates",
    "/team",
    "/our-team",
    "/staff",
    "/doctors",
    "/attorneys",
    "/treatments",
    "/procedures",
    "/gallery",
    "/portfolio",
    "/work",
    "/contact",
    "/contact-us",
    "/location",
]

# Path keywords that mark a page as worth fetching
RELEVANT_KEYWORDS = [
    "about",
    "service",
    "fleet",
    "vehicle",
    "car",
    "menu",
    "food",
    "price",
    "pricing",
    "rate",
    "team",
    "staff",
    "doctor",
    "attorney",
    "treatment",
    "procedure",
    "gallery",
    "portfolio",
    "contact",
    "location",
]

# Path keywords for pages that get the larger detail budget
DETAIL_KEYWORDS = ["fleet", "vehicle", "menu", "service", "team", "doctor", "attorney"]

# Links that are never pages
SKIP_LINK_PREFIXES = ("#", "mailto:", "tel:", "javascript:", "data:")
SKIP_LINK_EXTENSIONS = (
    ".pdf",
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".svg",
    ".webp",
    ".zip",
    ".mp4",
    ".mp3",
    ".css",
    ".js",
    ".xml",
)

# Extraction
DEFAULT_EXTRACTION_MODE = "flat"
FAILED_BUSINESS_NAME = "Could not extract - please enter manually"
RAW_PREVIEW_CHARS = 2000
