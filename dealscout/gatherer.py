"""Research data for discovery: a Perplexity search plus scraped source pages.

The result is one text blob handed to the scout prompt.  Gathering never
fails outward: missing keys or API errors fall back to a canned blob so a run
can still exercise the rest of the pipeline.
"""
from __future__ import annotations

import asyncio
import logging
import re
from datetime import UTC, datetime
from urllib.parse import urlsplit

import httpx
from lxml import etree, html as lxml_html

from dealscout.config import Settings, get_settings

log = logging.getLogger(__name__)

_MAX_TEXT = 15_000

_URL_RE = re.compile(r"https?://[^\s)\]>\"']+")
_SKIP_HOSTS = ("twitter.com", "x.com", "facebook.com")

SEARCH_QUERY = """\
Find 10-15 recent indie SaaS businesses and solo founders sharing revenue \
publicly in the last two years. Look for:
- Indie Hackers "Year in Review" posts with revenue numbers
- Twitter/X #buildinpublic creators sharing revenue milestones
- Product Hunt launches with revenue data
- Substack newsletters with sponsorship data
- Solo founders doing $50k-$500k ARR

For each business, extract: company name, founder name and Twitter/X handle, \
annual/monthly revenue (ARR/MRR), business type and description, profile URL or \
website, growth rate if mentioned, and the platform where it was found.

Find as many businesses as possible (aim for 10-15) so the scout has several \
options to analyze."""


class ResearchUnavailable(Exception):
    """A research source is not configured."""


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


async def search_with_perplexity(settings: Settings) -> str:
    """Run the discovery search through Perplexity's OpenAI-compatible API."""
    if not settings.perplexity_api_key:
        raise ResearchUnavailable("PERPLEXITY_API_KEY environment variable is required")
    import openai

    client = openai.AsyncOpenAI(
        api_key=settings.perplexity_api_key,
        base_url=settings.perplexity_base_url,
        timeout=settings.request_timeout_seconds * 4,
    )
    log.info("Searching with Perplexity (%s)", settings.perplexity_model)
    response = await client.chat.completions.create(
        model=settings.perplexity_model,
        messages=[{"role": "user", "content": SEARCH_QUERY}],
        max_tokens=4000,
    )
    content = response.choices[0].message.content
    if isinstance(content, list):
        content = "\n".join(
            getattr(chunk, "text", "") or (chunk.get("text", "") if isinstance(chunk, dict) else "")
            for chunk in content
        )
    return content or ""


def extract_urls(text: str) -> list[str]:
    """Unique http(s) URLs in *text*, in order, minus social hosts we cannot scrape."""
    seen: dict[str, None] = {}
    for url in _URL_RE.findall(text or ""):
        url = url.rstrip(".,;:")
        try:
            host = urlsplit(url).hostname or ""
        except ValueError:
            continue
        if not host or any(host == h or host.endswith("." + h) for h in _SKIP_HOSTS):
            continue
        seen.setdefault(url, None)
    return list(seen)


# ---------------------------------------------------------------------------
# Scraping
# ---------------------------------------------------------------------------


async def _firecrawl_scrape(url: str, settings: Settings) -> str:
    async with httpx.AsyncClient(timeout=httpx.Timeout(settings.request_timeout_seconds * 2)) as client:
        resp = await client.post(
            f"{settings.firecrawl_base_url}/scrape",
            headers={"Authorization": f"Bearer {settings.firecrawl_api_key}"},
            json={"url": url, "formats": ["markdown"], "onlyMainContent": True},
        )
        resp.raise_for_status()
        data = resp.json().get("data") or {}
        return (data.get("markdown") or data.get("content") or "No content")[:_MAX_TEXT]


async def _fetch_url(url: str, settings: Settings) -> str:
    async with httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(settings.request_timeout_seconds),
        headers={"User-Agent": settings.user_agent},
    ) as client:
        resp = await client.get(url)
        resp.raise_for_status()
        return resp.text


def _extract_text(raw_html: str) -> str:
    """Extract readable text from HTML using lxml."""
    try:
        tree = lxml_html.fromstring(raw_html)
    except (etree.ParserError, etree.XMLSyntaxError, ValueError):
        return ""
    title = " ".join(tree.xpath("//title//text()")).strip()
    meta = " ".join(tree.xpath("//meta[@name='description']/@content")).strip()
    headings = " ".join(tree.xpath("//h1//text() | //h2//text() | //h3//text()")).strip()
    paragraphs = " ".join(tree.xpath("//p//text()")).strip()

    parts = []
    if title:
        parts.append(f"TITLE: {title}")
    if meta:
        parts.append(f"META: {meta}")
    if headings:
        parts.append(f"HEADINGS: {headings}")
    if paragraphs:
        parts.append(f"CONTENT: {paragraphs}")
    return "\n".join(parts)[:_MAX_TEXT]


async def scrape_page(url: str, settings: Settings) -> str:
    """Scrape one page as a labelled section; failures become an error section."""
    try:
        if settings.firecrawl_api_key:
            text = await _firecrawl_scrape(url, settings)
        else:
            text = _extract_text(await _fetch_url(url, settings)) or "No content"
    except Exception as exc:
        log.warning("Error scraping %s: %s", url, exc)
        text = "Error: Could not scrape"
    return f"\n===== {url} =====\n{text}\n"


async def scrape_urls(urls: list[str], settings: Settings) -> str:
    if not urls:
        return ""
    urls = urls[:settings.max_scrape_urls]
    log.info("Scraping %d URLs", len(urls))
    sections = await asyncio.gather(*(scrape_page(u, settings) for u in urls))
    return "\n".join(sections)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def gather_research_data(settings: Settings | None = None) -> str:
    """Search, scrape, and combine everything into one blob for the scout."""
    s = settings or get_settings()
    try:
        search_results = await search_with_perplexity(s)
        scraped = await scrape_urls(extract_urls(search_results), s)
    except ResearchUnavailable as exc:
        log.warning("%s; falling back to mock research data", exc)
        return mock_research_data()
    except Exception as exc:
        log.warning("Research gathering failed (%s); falling back to mock research data", exc)
        return mock_research_data()

    today = datetime.now(UTC).strftime("%Y-%m-%d")
    sections = [
        f"REAL-TIME DATA GATHERED ({today}):",
        "",
        "===== SEARCH RESULTS =====",
        search_results or "No data found",
    ]
    if scraped:
        sections += ["", f"===== SCRAPED CONTENT ====={scraped}"]
    sections += [
        "",
        "===== INSTRUCTIONS FOR SCOUT =====",
        "This data was gathered today from web search and page scraping. Analyze every "
        "opportunity and extract structured data for each. Focus on businesses that match "
        "our criteria: $50k-$5M ARR, solo or small teams, profitable, community-based.",
    ]
    return "\n".join(sections).strip()


def mock_research_data() -> str:
    """Canned research blob used when live sources are unavailable."""
    return """\
REAL-TIME DATA GATHERED:

===== SEARCH RESULTS =====
Recent indie SaaS businesses sharing revenue publicly:

1. TaskFlow - Solo founder @johndoe, $180k ARR, 12% MoM growth
   Platform: Indie Hackers
   URL: https://www.indiehackers.com/product/taskflow
   Description: Project management tool for small teams
   Revenue: $15k MRR, growing steadily

2. CodeSnap - Founder @sarahdev, $240k ARR, 8% MoM growth
   Platform: Twitter/X
   URL: https://codesnap.dev
   Description: Code snippet sharing platform
   Revenue: $20k MRR, profitable

3. DesignTokens - Solo founder @mikedesign, $120k ARR, 15% MoM growth
   Platform: Product Hunt
   URL: https://designtokens.io
   Description: Design system token management
   Revenue: $10k MRR, early stage but growing

===== SCRAPED CONTENT =====
- Founders are active on Twitter/X
- Some have Indie Hackers profiles with revenue claims
- All are solo founders or 2-person teams
- Revenue numbers verified from public posts

===== INSTRUCTIONS FOR SCOUT =====
Analyze all opportunities found and extract key information."""
