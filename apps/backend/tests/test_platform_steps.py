"""
Tests for the ATS API steps (Greenhouse, Lever, SmartRecruiters, Workable,
Recruitee) against mocked APIs.
"""
import json

import httpx
import pytest

from careerscan.core.net import HTTPClient
from careerscan.crawler.steps.greenhouse import GreenhouseStep, extract_board_token
from careerscan.crawler.steps.lever import LeverStep, extract_company_slug
from careerscan.crawler.steps.recruitee import RecruiteeStep, extract_company
from careerscan.crawler.steps.smartrecruiters import SmartRecruitersStep, extract_company_id
from careerscan.crawler.steps.workable import WorkableStep, extract_account
from careerscan.models import PipelineContext
from careerscan.pipeline.validator import ResultValidator


def routed_client(routes):
    """HTTPClient whose transport answers (host, path) pairs; anything else is a 404"""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        route = routes.get((request.url.host, request.url.path))
        if route is None:
            return httpx.Response(404, text='Not found')
        if callable(route):
            return route(request)
        if isinstance(route, str):
            return httpx.Response(200, text=route, headers={'content-type': 'text/html'})
        return httpx.Response(200, text=json.dumps(route), headers={'content-type': 'application/json'})

    client = HTTPClient(transport=httpx.MockTransport(handler))
    client.requests = requests
    return client


class TestIdentifiers:
    """Board token, slug and company id extraction"""

    def test_greenhouse_token(self):
        assert extract_board_token('https://boards.greenhouse.io/northwind') == 'northwind'
        assert extract_board_token('https://job-boards.greenhouse.io/northwind/jobs/42') == 'northwind'
        assert extract_board_token('https://boards.greenhouse.io/embed/job_board?for=northwind') == 'northwind'
        html = '<script src="https://boards.greenhouse.io/embed/job_board/js?for=acme"></script>'
        assert extract_board_token('https://acme.example/careers', html) == 'acme'
        assert extract_board_token('https://acme.example/careers') is None

    def test_lever_slug(self):
        assert extract_company_slug('https://jobs.lever.co/northwind/5c1a-77') == 'northwind'
        assert extract_company_slug('https://jobs.lever.co/') is None
        html = '<a href="https://jobs.lever.co/acme">All jobs</a>'
        assert extract_company_slug('https://acme.example/careers', html) == 'acme'

    def test_smartrecruiters_company(self):
        assert extract_company_id('https://careers.smartrecruiters.com/Northwind') == 'Northwind'
        html = '<div data-src="https://api.smartrecruiters.com/v1/companies/Acme/postings"></div>'
        assert extract_company_id('https://acme.example/careers', html) == 'Acme'
        assert extract_company_id('https://acme.example/careers') is None

    def test_workable_account(self):
        assert extract_account('https://apply.workable.com/northwind/') == 'northwind'
        assert extract_account('https://apply.workable.com/northwind/j/A1B2C3/') == 'northwind'
        assert extract_account('https://northwind.workable.com/') == 'northwind'
        html = '<iframe src="https://apply.workable.com/acme/?embed=true"></iframe>'
        assert extract_account('https://acme.example/careers', html) == 'acme'
        assert extract_account('https://apply.workable.com/') is None

    def test_recruitee_company(self):
        assert extract_company('https://northwind.recruitee.com/') == 'northwind'
        html = '<div data-recruitee data-src="https://acme.recruitee.com/api/offers"></div>'
        assert extract_company('https://acme.example/careers', html) == 'acme'
        assert extract_company('https://www.recruitee.com/') is None


class TestApplicability:
    """Platform steps only apply to their own platform"""

    @pytest.mark.asyncio
    async def test_url_pattern(self, dictionary):
        step = GreenhouseStep(dictionary, routed_client({}))
        assert await step.is_applicable('https://boards.greenhouse.io/northwind', PipelineContext())
        assert not await step.is_applicable('https://northwind.example/careers', PipelineContext())

    @pytest.mark.asyncio
    async def test_html_evidence(self, dictionary):
        step = LeverStep(dictionary, routed_client({}))
        context = PipelineContext(html_content='<div class="lever-jobs-container"></div>')
        assert await step.is_applicable('https://northwind.example/careers', context)

    @pytest.mark.asyncio
    async def test_conflicting_platform_backs_off(self, dictionary):
        step = GreenhouseStep(dictionary, routed_client({}))
        context = PipelineContext(html_content='<a href="https://jobs.lever.co/northwind">Jobs</a>')
        assert not await step.is_applicable('https://boards.greenhouse.io/northwind', context)

    @pytest.mark.asyncio
    async def test_platform_hint(self, dictionary):
        step = SmartRecruitersStep(dictionary, routed_client({}))
        context = PipelineContext(detected_platform=dictionary.get_platform('SmartRecruiters'))
        assert await step.is_applicable('https://northwind.example/careers', context)


class TestGreenhouse:
    """Boards API and embed fallback"""

    @pytest.mark.asyncio
    async def test_api(self, dictionary):
        client = routed_client({
            ('boards-api.greenhouse.io', '/v1/boards/northwind/jobs'): {'jobs': [
                {'title': 'Data Engineer', 'absolute_url': 'https://boards.greenhouse.io/northwind/jobs/1',
                 'location': {'name': 'Berlin'}, 'departments': [{'name': 'Data'}]},
                {'title': 'Product Designer', 'absolute_url': 'https://boards.greenhouse.io/northwind/jobs/2',
                 'location': {'name': 'Remote'}, 'departments': []},
                {'title': 'No URL'},
            ]},
        })
        step = GreenhouseStep(dictionary, client)

        result = await step.scrape('https://boards.greenhouse.io/northwind', PipelineContext())

        assert [link.text for link in result.links] == ['Data Engineer', 'Product Designer']
        assert result.links[0].location == 'Berlin'
        assert result.links[0].department == 'Data'
        assert result.links[0].confidence == 0.9
        assert result.detected_platform == 'Greenhouse'
        assert result.metadata == {'source': 'greenhouse-api', 'jobs_found': 2}
        assert '2 open positions' in result.text

    @pytest.mark.asyncio
    async def test_embed_fallback(self, dictionary):
        board = (
            '<html><body>'
            '<div class="opening"><a href="/northwind/jobs/7">Support Engineer</a>'
            '<span class="location">Lisbon</span></div>'
            '<div class="opening"><a href="/northwind/jobs/8">Account Manager</a></div>'
            '</body></html>'
        )
        client = routed_client({('boards.greenhouse.io', '/embed/job_board'): board})
        step = GreenhouseStep(dictionary, client)

        result = await step.scrape('https://boards.greenhouse.io/northwind', PipelineContext())

        assert result.metadata['source'] == 'greenhouse-embed'
        assert [link.url for link in result.links] == [
            'https://boards.greenhouse.io/northwind/jobs/7',
            'https://boards.greenhouse.io/northwind/jobs/8',
        ]
        assert result.links[0].location == 'Lisbon'
        assert result.links[0].confidence == 0.85

    @pytest.mark.asyncio
    async def test_everything_fails(self, dictionary):
        step = GreenhouseStep(dictionary, routed_client({}))
        assert await step.scrape('https://boards.greenhouse.io/northwind', PipelineContext()) is None

    @pytest.mark.asyncio
    async def test_no_token(self, dictionary):
        client = routed_client({})
        step = GreenhouseStep(dictionary, client)
        assert await step.scrape('https://northwind.example/careers', PipelineContext()) is None
        assert client.requests == []


class TestLever:
    """Postings API and hosted board fallback"""

    @pytest.mark.asyncio
    async def test_api(self, dictionary):
        client = routed_client({
            ('api.lever.co', '/v0/postings/northwind'): [
                {'id': 'a1', 'text': 'Site Reliability Engineer',
                 'hostedUrl': 'https://jobs.lever.co/northwind/a1',
                 'categories': {'location': 'Berlin', 'team': 'Platform'}},
                {'id': 'b2', 'text': 'Recruiter', 'categories': {}},
            ],
        })
        step = LeverStep(dictionary, client)

        result = await step.scrape('https://jobs.lever.co/northwind', PipelineContext())

        assert result.metadata['source'] == 'lever-api'
        assert [link.url for link in result.links] == [
            'https://jobs.lever.co/northwind/a1',
            'https://jobs.lever.co/northwind/b2',
        ]
        assert result.links[0].department == 'Platform'
        assert result.title == 'Northwind'

    @pytest.mark.asyncio
    async def test_eu_endpoint(self, dictionary):
        client = routed_client({
            ('api.eu.lever.co', '/v0/postings/northwind'): [
                {'id': 'c3', 'text': 'Backend Engineer', 'hostedUrl': 'https://jobs.eu.lever.co/northwind/c3'},
            ],
        })
        result = await LeverStep(dictionary, client).scrape('https://jobs.eu.lever.co/northwind', PipelineContext())
        assert result.links[0].url == 'https://jobs.eu.lever.co/northwind/c3'

    @pytest.mark.asyncio
    async def test_hosted_board_fallback(self, dictionary):
        board = (
            '<html><head><title>Northwind - Jobs</title></head><body>'
            '<div class="posting"><a class="posting-title" href="https://jobs.lever.co/northwind/d4">'
            '<h5>Data Analyst</h5><span class="sort-by-location">Remote</span></a></div>'
            '</body></html>'
        )
        client = routed_client({('jobs.lever.co', '/northwind'): board})
        step = LeverStep(dictionary, client)

        result = await step.scrape('https://jobs.lever.co/northwind', PipelineContext())

        assert result.metadata['source'] == 'lever-board'
        assert result.links[0].text == 'Data Analyst'
        assert result.links[0].location == 'Remote'
        assert result.title == 'Northwind - Jobs'


class TestSmartRecruiters:
    """Paged postings API"""

    @pytest.mark.asyncio
    async def test_paging(self, dictionary):
        def postings(request):
            offset = int(request.url.params['offset'])
            count = 100 if offset == 0 else 50
            content = [
                {'id': f'p{offset + i}', 'name': f'Role {offset + i}',
                 'location': {'city': 'Berlin', 'country': 'de'}, 'department': {'label': 'Ops'}}
                for i in range(count)
            ]
            return httpx.Response(200, json={'totalFound': 150, 'content': content})

        client = routed_client({('api.smartrecruiters.com', '/v1/companies/Northwind/postings'): postings})
        step = SmartRecruitersStep(dictionary, client)

        result = await step.scrape('https://careers.smartrecruiters.com/Northwind', PipelineContext())

        assert len(result.links) == 150
        assert len(client.requests) == 2
        assert result.links[0].url == 'https://jobs.smartrecruiters.com/Northwind/p0'
        assert result.links[0].location == 'Berlin, de'
        assert result.links[0].department == 'Ops'
        assert result.metadata['jobs_found'] == 150

    @pytest.mark.asyncio
    async def test_no_postings(self, dictionary):
        client = routed_client({
            ('api.smartrecruiters.com', '/v1/companies/Northwind/postings'): {'totalFound': 0, 'content': []},
        })
        step = SmartRecruitersStep(dictionary, client)
        assert await step.scrape('https://careers.smartrecruiters.com/Northwind', PipelineContext()) is None

    @pytest.mark.asyncio
    async def test_string_department_and_location(self, dictionary):
        client = routed_client({
            ('api.smartrecruiters.com', '/v1/companies/Northwind/postings'): {'totalFound': 2, 'content': [
                {'id': 'p1', 'name': 'Warehouse Lead', 'location': 'Hamburg', 'department': 'Operations'},
                {'id': 'p2', 'name': 'Driver', 'location': None, 'department': 42},
            ]},
        })
        step = SmartRecruitersStep(dictionary, client)

        result = await step.scrape('https://careers.smartrecruiters.com/Northwind', PipelineContext())

        assert [link.department for link in result.links] == ['Operations', None]
        assert [link.location for link in result.links] == ['Hamburg', None]


class TestWorkable:
    """Token-paged POST search API"""

    @pytest.mark.asyncio
    async def test_api_paging(self, dictionary):
        bodies = []

        def jobs(request):
            body = json.loads(request.content)
            bodies.append(body)
            if 'token' not in body:
                return httpx.Response(200, json={'total': 2, 'nextPage': 'page-2', 'results': [
                    {'shortcode': 'A1B2C3', 'title': 'Fleet Planner',
                     'location': {'city': 'Berlin', 'country': 'Germany'}, 'department': ['Operations']},
                ]})
            return httpx.Response(200, json={'total': 2, 'results': [
                {'shortcode': 'D4E5F6', 'title': 'Backend Engineer', 'remote': True, 'location': {}},
                {'title': 'No shortcode'},
            ]})

        client = routed_client({('apply.workable.com', '/api/v3/accounts/northwind/jobs'): jobs})
        step = WorkableStep(dictionary, client)

        result = await step.scrape('https://apply.workable.com/northwind/', PipelineContext())

        assert [r.method for r in client.requests] == ['POST', 'POST']
        assert bodies[1]['token'] == 'page-2'
        assert [link.url for link in result.links] == [
            'https://apply.workable.com/northwind/j/A1B2C3/',
            'https://apply.workable.com/northwind/j/D4E5F6/',
        ]
        assert result.links[0].location == 'Berlin, Germany'
        assert result.links[0].department == 'Operations'
        assert result.links[1].location == 'Remote'
        assert result.detected_platform == 'Workable'
        assert result.metadata == {'source': 'workable-api', 'jobs_found': 2}

    @pytest.mark.asyncio
    async def test_applicability(self, dictionary):
        step = WorkableStep(dictionary, routed_client({}))
        assert await step.is_applicable('https://apply.workable.com/northwind/', PipelineContext())
        assert not await step.is_applicable('https://boards.greenhouse.io/northwind', PipelineContext())

    @pytest.mark.asyncio
    async def test_no_jobs(self, dictionary):
        client = routed_client({('apply.workable.com', '/api/v3/accounts/northwind/jobs'): {'results': []}})
        step = WorkableStep(dictionary, client)
        assert await step.scrape('https://apply.workable.com/northwind/', PipelineContext()) is None
        assert len(client.requests) == 1


class TestRecruitee:
    """Offers API"""

    @pytest.mark.asyncio
    async def test_published_offers(self, dictionary):
        client = routed_client({
            ('northwind.recruitee.com', '/api/offers/'): {'offers': [
                {'id': 1, 'title': 'Customer Success Manager', 'slug': 'customer-success-manager',
                 'careers_url': 'https://northwind.recruitee.com/o/customer-success-manager',
                 'city': 'Lisbon', 'country': 'Portugal', 'department': 'Support',
                 'description': '<p>Help logistics teams get the most out of routing.</p>',
                 'status': 'published'},
                {'id': 2, 'title': 'Data Engineer', 'slug': 'data-engineer', 'location': 'Berlin, Germany'},
                {'id': 3, 'title': 'Draft role', 'slug': 'draft-role', 'status': 'draft'},
            ]},
        })
        step = RecruiteeStep(dictionary, client)

        result = await step.scrape('https://northwind.recruitee.com/', PipelineContext())

        assert [link.url for link in result.links] == [
            'https://northwind.recruitee.com/o/customer-success-manager',
            'https://northwind.recruitee.com/o/data-engineer',
        ]
        assert result.links[0].location == 'Lisbon, Portugal'
        assert result.links[0].department == 'Support'
        assert result.links[1].location == 'Berlin, Germany'
        assert 'Help logistics teams get the most out of routing.' in result.text
        assert result.metadata['source'] == 'recruitee-api'

    @pytest.mark.asyncio
    async def test_no_company(self, dictionary):
        client = routed_client({})
        step = RecruiteeStep(dictionary, client)
        assert await step.scrape('https://northwind.example/careers', PipelineContext()) is None
        assert client.requests == []


class TestBoardText:
    """Board results for small boards still clear the pipeline validator"""

    @pytest.mark.asyncio
    async def test_single_greenhouse_posting(self, dictionary):
        client = routed_client({
            ('boards-api.greenhouse.io', '/v1/boards/northwind/jobs'): {'jobs': [
                {'title': 'Analyst', 'absolute_url': 'https://boards.greenhouse.io/northwind/jobs/1',
                 'content': '&lt;p&gt;Own the weekly &lt;b&gt;capacity&lt;/b&gt; report.&lt;/p&gt;'},
            ]},
        })
        result = await GreenhouseStep(dictionary, client).scrape('https://boards.greenhouse.io/northwind',
                                                                 PipelineContext())

        assert client.requests[0].url.params['content'] == 'true'
        assert result.text.startswith('northwind careers: 1 open position on Greenhouse.')
        assert 'Own the weekly capacity report.' in result.text
        assert ResultValidator(dictionary).is_valid(result)

    @pytest.mark.asyncio
    async def test_single_posting_without_description(self, dictionary):
        client = routed_client({
            ('api.smartrecruiters.com', '/v1/companies/Northwind/postings'): {'totalFound': 1, 'content': [
                {'id': 'p1', 'name': 'Driver', 'location': {'city': 'Berlin'}},
            ]},
        })
        result = await SmartRecruitersStep(dictionary, client).scrape(
            'https://careers.smartrecruiters.com/Northwind', PipelineContext()
        )

        assert len(result.text) > 100
        assert 'Apply: https://jobs.smartrecruiters.com/Northwind/p1' in result.text
        assert ResultValidator(dictionary).is_valid(result)
