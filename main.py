"""VSI Research - source discovery and content analysis

Simple CLI for running a research query against the collections API.
"""

import argparse
import asyncio
import sys

import uvicorn

from vsi_research.agents.pipeline import run_research
from vsi_research.errors import ResearchServiceError
from vsi_research.models.events import AgentEvent
from vsi_research.services.external_content import ExternalContentService


def print_event(event: AgentEvent) -> None:
    event_type = event.event.value
    data = event.data

    if event_type == "agent_started":
        print(f"\n[~] {data.get('agent')} started")

    elif event_type == "agent_progress":
        print(f"  [{data.get('progress'):>3}%] {data.get('agent')}: {data.get('message')}")

    elif event_type == "sources_curated":
        print(
            f"  [+] {data.get('count')} sources curated "
            f"({data.get('external')} external, avg quality {data.get('average_quality')})"
        )

    elif event_type == "external_analysis":
        print(f"  [+] External pages analyzed: {data.get('successful')}/{data.get('total_analyzed')}")

    elif event_type == "agent_completed":
        print(f"[*] {data.get('agent')} completed in {data.get('duration_ms')}ms")

    elif event_type == "error":
        print(f"\n[!] Error: {data.get('message', 'Unknown error')}")


async def research(query: str, urls: list[str], frameworks: list[str] | None) -> int:
    print(f"Research query: {query}")
    print("-" * 50)

    external = ExternalContentService.from_settings()
    try:
        result = await run_research(
            query,
            external_urls=urls,
            frameworks=frameworks,
            external_content=external if external.is_enabled() else None,
            event_sink=print_event,
        )
    except ResearchServiceError as e:
        print(f"\n[!] Research failed: {e}")
        return 1
    finally:
        await external.cleanup()

    print(f"\n{'=' * 50}")
    print("KEY THEMES:")
    for theme in result["themes"][:5]:
        print(f"  - {theme.category} (score {theme.overall_score:.2f}, {theme.occurrences} sources)")
    print("TOP INSIGHTS:")
    for insight in result["insights"][:10]:
        print(f"  - [{insight.type}] {insight.content}")
    for recommendation in result["discovery"]["recommendations"]:
        print(f"  > {recommendation['message']}")
    return 0


def main():
    parser = argparse.ArgumentParser(description="VSI research agents")
    parser.add_argument("--query", "-q", help="Research query")
    parser.add_argument("--url", "-u", action="append", default=[], help="External URL to analyze")
    parser.add_argument(
        "--frameworks",
        "-f",
        help="Comma-separated analysis frameworks (default: from config)",
    )
    parser.add_argument("--serve", action="store_true", help="Run the HTTP API instead")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)

    args = parser.parse_args()
    if args.serve:
        uvicorn.run("vsi_research.main:app", host=args.host, port=args.port)
        return
    if not args.query:
        parser.error("--query is required unless --serve is given")

    frameworks = [f.strip() for f in args.frameworks.split(",")] if args.frameworks else None

    sys.exit(asyncio.run(research(args.query, args.url, frameworks)))


if __name__ == "__main__":
    main()
