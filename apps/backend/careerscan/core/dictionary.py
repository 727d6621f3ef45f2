"""
Dictionary loader.

A dictionary bundles the vocabulary, selectors and known platform signatures
for one language. It is read from YAML (data/<language>.yaml by default) and
handed to the pipeline and every step at construction time.
"""
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Pattern

import yaml

from careerscan.errors import DictionaryError
from careerscan.models import PlatformSignature

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent.parent / 'data'
DEFAULT_LANGUAGE = 'en'

REQUIRED_KEYS = ('job_terms', 'platforms')

# Cache for loaded dictionaries (language/path -> Dictionary)
_dictionary_cache: Dict[str, 'Dictionary'] = {}


class Dictionary:
    """Read-only accessors over one language's heuristic data"""

    def __init__(self, data: Dict, language: Optional[str] = None):
        missing = [key for key in REQUIRED_KEYS if key not in data]
        if missing:
            raise DictionaryError(f"Dictionary is missing required keys: {', '.join(missing)}")

        self._data = data
        self._language = language or data.get('language', DEFAULT_LANGUAGE)

        # Declaration order is the default tie-break; an explicit priority wins
        platforms = []
        for index, raw in enumerate(data.get('platforms') or []):
            entry = dict(raw)
            entry.setdefault('priority', index)
            platforms.append(PlatformSignature(**entry))
        self._platforms = sorted(platforms, key=lambda p: p.priority)

        self._job_url_patterns = [re.compile(p, re.I) for p in data.get('job_url_patterns', [])]
        self._show_more_positive = re.compile(data.get('show_more_positive') or r'show more|load more', re.I)
        self._show_more_negative = re.compile(data.get('show_more_negative') or r'cookie|close', re.I)

    def _list(self, key: str) -> List[str]:
        return list(self._data.get(key) or [])

    def get_job_terms(self) -> List[str]:
        return self._list('job_terms')

    def get_known_job_platforms(self) -> List[PlatformSignature]:
        return list(self._platforms)

    def get_platform(self, name: str) -> Optional[PlatformSignature]:
        lowered = name.lower()
        for platform in self._platforms:
            if platform.name.lower() == lowered:
                return platform
        return None

    def get_cookie_selectors(self) -> List[str]:
        return self._list('cookie_selectors')

    def get_cookie_texts(self) -> List[str]:
        return self._list('cookie_texts')

    def get_show_more_selectors(self) -> List[str]:
        return self._list('show_more_selectors')

    def get_show_more_patterns(self) -> tuple:
        """(positive, negative) compiled regexes for show-more controls"""
        return self._show_more_positive, self._show_more_negative

    def get_pagination_selectors(self) -> List[str]:
        return self._list('pagination_selectors')

    def get_pagination_texts(self) -> List[str]:
        return self._list('pagination_texts')

    def get_job_url_patterns(self) -> List[Pattern]:
        return list(self._job_url_patterns)

    def get_job_listing_selectors(self) -> List[str]:
        return self._list('job_listing_selectors')

    def get_blocking_terms(self) -> List[str]:
        return self._list('blocking_terms')

    def get_dynamic_content_indicators(self) -> List[str]:
        return self._list('dynamic_content_indicators')

    def get_generic_link_texts(self) -> List[str]:
        return self._list('generic_link_texts')

    def get_iframe_keywords(self) -> List[str]:
        return self._list('iframe_keywords')

    def get_context_terms(self) -> Dict[str, str]:
        """Regex alternations used by the relevance context check"""
        return {
            'role': self._data.get('role_terms') or 'job|position|role',
            'seniority': self._data.get('seniority_terms') or 'senior|junior|lead|manager',
            'function': self._data.get('function_terms') or 'engineer|developer|analyst|specialist',
        }

    def get_current_language(self) -> str:
        return self._language

    def __repr__(self):
        return f"<Dictionary(language={self._language}, platforms={len(self._platforms)})>"


def load_dictionary(language: str = DEFAULT_LANGUAGE, path: Optional[str] = None) -> Dictionary:
    """
    Load (and cache) a dictionary.

    Args:
        language: Language code; resolves to data/<language>.yaml
        path: Explicit YAML path, overrides language lookup

    Returns:
        Dictionary instance

    Raises:
        DictionaryError: if the file is missing or not a mapping
    """
    if path:
        config_path = Path(path)
    else:
        config_path = DATA_DIR / f"{language}.yaml"
        if not config_path.exists() and language != DEFAULT_LANGUAGE:
            logger.warning(f"[dictionary] No dictionary for '{language}', falling back to {DEFAULT_LANGUAGE}")
            config_path = DATA_DIR / f"{DEFAULT_LANGUAGE}.yaml"

    cache_id = str(config_path.resolve())
    if cache_id in _dictionary_cache:
        return _dictionary_cache[cache_id]

    if not config_path.exists():
        raise DictionaryError(f"Dictionary file not found: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise DictionaryError(f"Invalid dictionary YAML {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise DictionaryError(f"Dictionary {config_path} must be a mapping")

    dictionary = Dictionary(data)
    _dictionary_cache[cache_id] = dictionary
    logger.info(f"[dictionary] Loaded {dictionary!r} from {config_path}")
    return dictionary
