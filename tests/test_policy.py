# File: tests/test_policy.py
import pytest

from knee_scraper.config import CrawlConfig
from knee_scraper.crawler.models import CrawlTask, PageArtifact, TaskState
from knee_scraper.crawler.policy import PolicyEngine, recurse_outcome, should_recurse
from knee_scraper.crawler.registry import VisitedRegistry
from knee_scraper.errors import SkipReason


def _artifact(text: str = "") -> PageArtifact:
    return PageArtifact(url="https://example.com/", text_blocks=[text] if text else [])


class FakeRobots:
    def __init__(self, blocked):
        self.blocked = set(blocked)

    async def allowed(self, url, user_agent):
        return url not in self.blocked

    async def rules_for(self, url):
        return None


@pytest.mark.parametrize(
    "depth,max_depth,state",
    [
        (0, 0, TaskState.DEPTH_EXHAUSTED),
        (0, 1, TaskState.RECURSED),
        (1, 1, TaskState.DEPTH_EXHAUSTED),
        (2, 3, TaskState.RECURSED),
    ],
)
def test_depth_is_inclusive(depth, max_depth, state):
    cfg = CrawlConfig(max_depth=max_depth)
    assert recurse_outcome(_artifact(), CrawlTask("https://example.com/", depth), cfg) is state


def test_follow_links_false_never_recurses():
    cfg = CrawlConfig(follow_links=False, max_depth=5)
    task = CrawlTask("https://example.com/", 0)
    assert recurse_outcome(_artifact(), task, cfg) is TaskState.DEPTH_EXHAUSTED
    assert not should_recurse(_artifact(), task, cfg)


def test_predicate_prunes():
    cfg = CrawlConfig(max_depth=3)
    task = CrawlTask("https://example.com/", 0)
    assert recurse_outcome(_artifact("Welcome to Contact page"), task, cfg, "Contact") is TaskState.RECURSED
    assert recurse_outcome(_artifact("nothing here"), task, cfg, "Contact") is TaskState.PRUNED
    assert recurse_outcome(_artifact("contact"), task, cfg, "Contact") is TaskState.PRUNED


@pytest.mark.asyncio()
async def test_check_fetch_order():
    cfg = CrawlConfig(max_depth=1, same_host_only=True)
    policy = PolicyEngine(cfg, FakeRobots({"https://example.com/blocked"}), seed_host="example.com")
    registry = VisitedRegistry(["https://example.com/seen"])

    assert await policy.check_fetch(CrawlTask("https://example.com/seen", 0), registry) is SkipReason.DUPLICATE
    assert await policy.check_fetch(CrawlTask("https://example.com/deep", 2), registry) is SkipReason.DEPTH
    assert await policy.check_fetch(CrawlTask("https://other.org/", 1), registry) is SkipReason.OFF_HOST
    assert await policy.check_fetch(CrawlTask("https://example.com/blocked", 1), registry) is SkipReason.ROBOTS
    assert await policy.should_fetch(CrawlTask("https://example.com/ok", 1), registry)


@pytest.mark.asyncio()
async def test_robots_ignored_when_disabled():
    cfg = CrawlConfig(respect_robots=False)
    policy = PolicyEngine(cfg, FakeRobots({"https://example.com/blocked"}))
    assert policy.robots is None
    assert await policy.should_fetch(CrawlTask("https://example.com/blocked", 0), VisitedRegistry())
    assert await policy.crawl_delay("https://example.com/") is None


def test_agent_defaults_to_wildcard():
    assert PolicyEngine(CrawlConfig()).agent == "*"
    assert PolicyEngine(CrawlConfig(user_agent="Bot/1")).agent == "Bot/1"
