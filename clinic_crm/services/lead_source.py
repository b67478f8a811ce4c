"""
Lead source classification — did this lead come from paid advertising?

Origins are free text typed by staff or filled in by integrations
("Instagram Ads", "Direct (Instagram)", "Campanha Botox jan", "indicação"),
so platform names and campaign terms are a case-insensitive substring match
against config.AD_SOURCE_KEYWORDS. Short terms like "ads" would also hit
"leads" or "downloads", so config.AD_SOURCE_WORDS only count as whole words.
"""
import re

from clinic_crm.config import AD_SOURCE_KEYWORDS, AD_SOURCE_WORDS


def _word_pattern(words):
    return re.compile(r'\b(?:' + '|'.join(re.escape(w) for w in words) + r')\b')


_DEFAULT_WORDS = _word_pattern(AD_SOURCE_WORDS)


def is_ad_sourced(origin, keywords=AD_SOURCE_KEYWORDS, words=AD_SOURCE_WORDS) -> bool:
    """
    True when the origin mentions an ad platform or ad/campaign term.

    Total: None, empty and non-string origins are simply not ad-sourced.
    """
    if not origin or not isinstance(origin, str):
        return False
    normalized = origin.lower()
    if any(keyword in normalized for keyword in keywords):
        return True
    if not words:
        return False
    pattern = _DEFAULT_WORDS if words is AD_SOURCE_WORDS else _word_pattern(words)
    return pattern.search(normalized) is not None
