"""
01_routing.py - Route messages to agents, then run a workflow
"""

import asyncio
from pathlib import Path

from agentflow import AgentFlow


async def main():
    app = AgentFlow(str(Path(__file__).parent / "config.yaml"))

    for message in ["translate: bom dia", "there is a bug in main.py", "what is the capital of Peru?"]:
        result = await app.chat(message)
        print(f"User: {message}")
        print(f"{result.agent_name}: {result.response}\n")

    result = await app.run_workflow("translate-and-summarize", "traduz: " + "uma frase longa " * 40)
    print(f"Workflow path: {result.path}")
    print(f"Answer: {result.response}")

    await app.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
