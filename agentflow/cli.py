"""Command-line entry point: chat, selection preview, agent and workflow listings."""

import asyncio
import json
import logging
import os
import sys


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


async def _run(args) -> int:
    from .app import AgentFlow

    app = AgentFlow(args.config)
    try:
        if args.command == "chat":
            result = await app.chat(args.message)
            _print_json(result.to_dict())
            return 0 if result.success else 1

        if args.command == "run":
            result = await app.run_workflow(args.workflow_id, args.message)
            _print_json(result.to_dict())
            return 0 if result.success else 1

        if args.command == "select":
            from .agents import AgentSelector
            agent = AgentSelector(await app.registry()).select(args.message)
            print(agent.name)
            return 0

        if args.command == "agents":
            registry = await app.registry()
            for agent in registry.snapshot().sorted_agents:
                role = agent.role.value if agent.role else "-"
                print(f"{agent.priority:>5}  {role:<12}  {agent.name}")
            return 0

        if args.command == "workflows":
            store = await app.workflow_store()
            active = await store.get_active()
            for workflow in await store.load_all():
                marker = "*" if active is not None and workflow.id == active.id else " "
                print(f"{marker} {workflow.id}  {workflow.name}")
            return 0

        if args.command == "activate":
            store = await app.workflow_store()
            await store.set_active(None if args.workflow_id == "none" else args.workflow_id)
            return 0
    finally:
        await app.shutdown()

    return 2


def main(argv=None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="AgentFlow agent router")
    parser.add_argument(
        "--config",
        default=os.getenv("AGENTFLOW_CONFIG", "config.yaml"),
        help="Path to the YAML config file",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    chat = subparsers.add_parser("chat", help="Answer a message (active workflow or selected agent)")
    chat.add_argument("message")

    run = subparsers.add_parser("run", help="Run a specific workflow")
    run.add_argument("workflow_id")
    run.add_argument("message")

    select = subparsers.add_parser("select", help="Show which agent a message would go to")
    select.add_argument("message")

    subparsers.add_parser("agents", help="List agents in priority order")
    subparsers.add_parser("workflows", help="List workflows (* marks the active one)")

    activate = subparsers.add_parser("activate", help="Set the active workflow ('none' clears it)")
    activate.add_argument("workflow_id")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(name)s - %(message)s",
    )

    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
