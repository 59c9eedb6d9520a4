"""
Deterministic extractor for regex-based contact signals.

This module detects factual tokens using pattern matching:
- Phone numbers (US and international shapes)
- Email addresses
- Street addresses
- Social media profile URLs

The normalizer uses these signals to decide whether a footer is worth
keeping; the structured extractor uses them to check oracle output.
"""

import re
from typing import Any

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp")


class DeterministicExtractor:
    """
    Regex-based detector for contact data.

    Provides cheap, LLM-free checks for:
    - Phone: (555) 123-4567, 555.123.4567, +1 555 123 4567, +44 20 7946 0958
    - Email: standard address shapes, image filenames excluded
    - Street address: house number followed by a street suffix
    - Social media: platform-specific URL patterns
    """

    EMAIL_PATTERN = r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"

    PHONE_PATTERNS = [
        r"(?:\+?1[-.\s]?)?\(?\b\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b",  # US: (123) 456-7890
        r"\+\d{1,3}[-.\s]?\(?\d{1,4}\)?[-.\s]?\d{2,4}[-.\s]?\d{3,9}\b",  # International
    ]

    STREET_ADDRESS_PATTERN = (
        r"\b\d{1,6}\s+(?:[A-Za-z0-9.'-]+\s+){0,4}"
        r"(?:Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Drive|Dr|Lane|Ln|Way|Court|Ct|"
        r"Place|Pl|Parkway|Pkwy|Highway|Hwy|Circle|Cir|Terrace|Suite|Ste)\b\.?"
    )

    SOCIAL_MEDIA_PATTERNS = {
        "facebook": r"(?:https?://)?(?:www\.)?facebook\.com/[\w.-]+",
        "instagram": r"(?:https?://)?(?:www\.)?instagram\.com/[\w.-]+",
        "twitter": r"(?:https?://)?(?:www\.)?(?:twitter\.com|x\.com)/[\w.-]+",
        "linkedin": r"(?:https?://)?(?:www\.)?linkedin\.com/(?:company|in)/[\w.-]+",
        "youtube": r"(?:https?://)?(?:www\.)?youtube\.com/(?:c/|channel/|user/|@)[\w.-]+",
        "yelp": r"(?:https?://)?(?:www\.)?yelp\.com/biz/[\w.-]+",
        "tiktok": r"(?:https?://)?(?:www\.)?tiktok\.com/@[\w.-]+",
    }

    def find_emails(self, text: str) -> list[str]:
        matches = re.findall(self.EMAIL_PATTERN, text or "", re.IGNORECASE)
        return [m for m in matches if not m.lower().endswith(IMAGE_EXTENSIONS)]

    def find_phones(self, text: str) -> list[str]:
        phones = []
        for pattern in self.PHONE_PATTERNS:
            for match in re.finditer(pattern, text or ""):
                digits = re.sub(r"\D", "", match.group(0))
                # Phone-shaped means 10-15 digits once punctuation is gone
                if 10 <= len(digits) <= 15 and match.group(0).strip() not in phones:
                    phones.append(match.group(0).strip())
        return phones

    def has_email(self, text: str) -> bool:
        return bool(self.find_emails(text))

    def has_phone(self, text: str) -> bool:
        return bool(self.find_phones(text))

    def has_street_address(self, text: str) -> bool:
        return re.search(self.STREET_ADDRESS_PATTERN, text or "", re.IGNORECASE) is not None

    def has_contact_signal(self, text: str) -> bool:
        """Any of the three independent signals: phone, email or street address."""
        return self.has_phone(text) or self.has_email(text) or self.has_street_address(text)

    def extract_contact_info(self, text: str) -> dict[str, Any]:
        """
        Extract the first email and phone from text.

        Returns:
            Dict with keys: email, phone (None when not found)
        """
        emails = self.find_emails(text)
        org_prefixes = ("info@", "contact@", "hello@", "book@", "bookings@", "reservations@", "office@")
        org_emails = [e for e in emails if e.lower().startswith(org_prefixes)]
        email = org_emails[0] if org_emails else (emails[0] if emails else None)

        phones = self.find_phones(text)
        return {"email": email, "phone": phones[0] if phones else None}

    def extract_social_links(self, text: str) -> dict[str, str]:
        """
        Extract social media URLs using platform-specific patterns.

        Returns:
            Dict mapping platform name to URL, e.g. {"instagram": "https://instagram.com/acmelimo"}
        """
        social_urls = {}
        for platform, pattern in self.SOCIAL_MEDIA_PATTERNS.items():
            match = re.search(pattern, text or "", re.IGNORECASE)
            if match:
                url = match.group(0).rstrip(".")
                if not url.startswith("http"):
                    url = f"https://{url}"
                social_urls[platform] = url
        return social_urls
