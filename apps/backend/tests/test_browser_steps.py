"""
Tests for the browser-backed steps that do not need a running Chromium.
"""
from contextlib import asynccontextmanager

import pytest

from careerscan.crawler.steps.headless import HeadlessRenderingStep
from careerscan.crawler.steps.iframe import IFRAME_CONFIDENCE, IframeAwareStep
from careerscan.errors import BrowserUnavailableError
from careerscan.models import PipelineContext, ScrapeOptions
from factories import job_link, make_result

URL = 'https://northwind.example/careers'


class BrokenBrowser:
    """Browser session that cannot launch"""

    def __init__(self):
        self.close_calls = 0

    @asynccontextmanager
    async def page(self, block_resources=True):
        raise BrowserUnavailableError('chromium not installed')
        yield

    async def close(self):
        self.close_calls += 1


class FakeFrame:
    def __init__(self, url, name=''):
        self.url = url
        self.name = name


class FakePage:
    def __init__(self, frames):
        self.main_frame = FakeFrame(URL)
        self.frames = [self.main_frame] + frames


class TestHeadlessStep:
    """Applicability and failure handling"""

    @pytest.mark.asyncio
    async def test_respects_headless_option(self, dictionary):
        step = HeadlessRenderingStep(dictionary, BrokenBrowser())
        assert await step.is_applicable(URL, PipelineContext())
        disabled = PipelineContext(options=ScrapeOptions(use_headless_fallback=False))
        assert not await step.is_applicable(URL, disabled)

    @pytest.mark.asyncio
    async def test_browser_unavailable(self, dictionary):
        step = HeadlessRenderingStep(dictionary, BrokenBrowser())
        assert await step.scrape(URL, PipelineContext()) is None

    def test_rendered_floor(self, dictionary):
        step = HeadlessRenderingStep(dictionary, BrokenBrowser())
        long_text = 'Open positions at Northwind across engineering and operations. ' * 4
        two_links = [job_link(URL + '/jobs/1', 'Backend Engineer'), job_link(URL + '/jobs/2', 'Data Analyst')]

        assert step.is_result_valid(make_result(text=long_text, links=two_links))
        assert not step.is_result_valid(make_result(text=long_text, links=two_links[:1]))
        assert not step.is_result_valid(make_result(links=two_links))

    @pytest.mark.asyncio
    async def test_close_releases_browser(self, dictionary):
        browser = BrokenBrowser()
        await HeadlessRenderingStep(dictionary, browser).close()
        assert browser.close_calls == 1


class TestIframeStep:
    """Applicability, frame selection and confidence floors"""

    @pytest.mark.asyncio
    async def test_iframe_platform(self, dictionary):
        step = IframeAwareStep(dictionary, BrokenBrowser())
        context = PipelineContext(detected_platform=dictionary.get_platform('Jobvite'))
        assert await step.is_applicable(URL, context)

    @pytest.mark.asyncio
    async def test_url_hint(self, dictionary):
        step = IframeAwareStep(dictionary, BrokenBrowser())
        assert await step.is_applicable('https://northwind.example/jobs-widget', PipelineContext())
        assert not await step.is_applicable(URL, PipelineContext())

    @pytest.mark.asyncio
    async def test_previous_result_mentions_iframe(self, dictionary):
        step = IframeAwareStep(dictionary, BrokenBrowser())
        previous = make_result(text='Our openings load in an iframe below.', links=[])
        assert await step.is_applicable(URL, PipelineContext().with_previous(previous))

    @pytest.mark.asyncio
    async def test_embedded_job_iframe(self, dictionary):
        step = IframeAwareStep(dictionary, BrokenBrowser())
        html = '<iframe src="https://northwind.jobs.example/board"></iframe>'
        assert await step.is_applicable(URL, PipelineContext(html_content=html))
        video = '<iframe src="https://video.example/embed/intro"></iframe>'
        assert not await step.is_applicable(URL, PipelineContext(html_content=video))

    @pytest.mark.asyncio
    async def test_headless_disabled(self, dictionary):
        step = IframeAwareStep(dictionary, BrokenBrowser())
        context = PipelineContext(
            options=ScrapeOptions(use_headless_fallback=False),
            detected_platform=dictionary.get_platform('Jobvite'),
        )
        assert not await step.is_applicable(URL, context)

    def test_relevant_frames(self, dictionary):
        step = IframeAwareStep(dictionary, BrokenBrowser())
        page = FakePage([
            FakeFrame('https://jobs.jobvite.com/northwind'),
            FakeFrame('https://ads.example/slot'),
            FakeFrame('about:blank', name='careers'),
            FakeFrame('https://cdn.example/x', name='career-widget'),
        ])
        urls = [frame.url for frame in step._relevant_frames(page)]
        assert urls == ['https://jobs.jobvite.com/northwind', 'https://cdn.example/x']

    def test_confidence_floor(self, dictionary):
        step = IframeAwareStep(dictionary, BrokenBrowser())
        result = make_result(links=[
            job_link(URL + '/jobs/1', 'Open position: Backend Engineer', confidence=0.4),
            job_link(URL + '/jobs/2', 'Northwind Berlin', confidence=0.4),
            job_link(URL + '/about', 'About', confidence=0.2, link_type='career_portal'),
        ])

        floored = step._with_confidence_floor(result, IFRAME_CONFIDENCE)

        assert [link.confidence for link in floored.links] == [0.9, 0.7, 0.2]

    @pytest.mark.asyncio
    async def test_browser_unavailable(self, dictionary):
        step = IframeAwareStep(dictionary, BrokenBrowser())
        assert await step.scrape(URL, PipelineContext()) is None
