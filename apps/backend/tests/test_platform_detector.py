"""
Tests for ATS platform detection.
"""
import pytest

from careerscan.core.dictionary import Dictionary
from careerscan.core.platform_detector import PlatformDetector


def make_detector(platforms) -> PlatformDetector:
    return PlatformDetector(Dictionary({'job_terms': ['job', 'jobs'], 'platforms': platforms}))


class TestDetect:
    """PlatformDetector.detect"""

    @pytest.mark.parametrize("url,expected", [
        ('https://boards.greenhouse.io/acme', 'Greenhouse'),
        ('https://jobs.lever.co/acme', 'Lever'),
        ('https://acme.wd5.myworkdayjobs.com/en-US/careers', 'Workday'),
        ('https://jobs.smartrecruiters.com/Acme1', 'SmartRecruiters'),
    ])
    def test_url_patterns(self, dictionary, url, expected):
        assert PlatformDetector(dictionary).detect(url).name == expected

    def test_unknown_url_without_html(self, dictionary):
        assert PlatformDetector(dictionary).detect('https://acme.example/careers') is None

    def test_strong_indicator_in_html(self, dictionary):
        html = '<div id="openings"><script src="https://jobs.lever.co/acme/embed.js"></script></div>'
        assert PlatformDetector(dictionary).detect('https://acme.example/careers', html).name == 'Lever'

    def test_min_indicator_matches(self):
        detector = make_detector([
            {'name': 'Alpha', 'indicators': ['alpha-board', 'alpha-widget'], 'min_indicator_matches': 2},
        ])
        assert detector.detect('https://x.example', '<div class="alpha-board"></div>') is None
        both = '<div class="alpha-board"><span class="alpha-widget"></span></div>'
        assert detector.detect('https://x.example', both).name == 'Alpha'

    def test_api_pattern_fallback(self):
        detector = make_detector([{'name': 'Alpha', 'api_patterns': ['api.alpha.example/v1']}])
        html = '<script>fetch("https://api.alpha.example/v1/jobs")</script>'
        assert detector.detect('https://x.example', html).name == 'Alpha'

    def test_declaration_order_breaks_ties(self):
        detector = make_detector([
            {'name': 'Alpha', 'patterns': ['jobs.example.com']},
            {'name': 'Beta', 'patterns': ['jobs.example.com']},
        ])
        assert detector.detect('https://jobs.example.com/acme').name == 'Alpha'

    def test_explicit_priority_breaks_ties(self):
        detector = make_detector([
            {'name': 'Alpha', 'patterns': ['jobs.example.com'], 'priority': 5},
            {'name': 'Beta', 'patterns': ['jobs.example.com'], 'priority': 1},
        ])
        assert detector.detect('https://jobs.example.com/acme').name == 'Beta'


class TestStepHints:
    """Conflicts, blocked and recommended steps"""

    def test_conflicting_indicators(self, dictionary):
        detector = PlatformDetector(dictionary)
        html = '<script src="https://jobs.lever.co/acme/embed.js"></script>'

        assert detector.has_conflicting_indicators('Greenhouse', html)
        assert not detector.has_conflicting_indicators('Lever', html)
        assert not detector.has_conflicting_indicators('Greenhouse', None)

    def test_blocked_and_recommended_steps(self, dictionary):
        detector = PlatformDetector(dictionary)
        greenhouse = dictionary.get_platform('Greenhouse')

        assert detector.should_block_step(greenhouse, 'lever-step')
        assert not detector.should_block_step(greenhouse, 'headless-rendering')
        assert not detector.should_block_step(None, 'lever-step')
        assert detector.recommended_step(greenhouse) == 'greenhouse-step'
        assert detector.recommended_step(None) is None


class TestAnalyzePageStructure:
    """analyze_page_structure strategies"""

    def test_specialized_platform(self, dictionary):
        analysis = PlatformDetector(dictionary).analyze_page_structure('https://boards.greenhouse.io/acme', '')
        assert analysis['platform'] == 'Greenhouse'
        assert analysis['strategy'] == 'specialized_scraper'

    def test_dynamic_page(self, dictionary):
        html = '<html><body><div id="root"></div><button>Load more</button></body></html>'
        analysis = PlatformDetector(dictionary).analyze_page_structure('https://acme.example/careers', html)

        assert analysis['has_dynamic_content']
        assert analysis['has_show_more']
        assert analysis['strategy'] == 'headless_browser'

    def test_static_page(self, dictionary):
        html = '<html><body><h1>Open positions</h1><a href="/jobs/1">Analyst</a></body></html>'
        analysis = PlatformDetector(dictionary).analyze_page_structure('https://acme.example/careers', html)

        assert analysis['platform'] is None
        assert analysis['strategy'] == 'simple_http'
        assert analysis['job_term_count'] >= 1
