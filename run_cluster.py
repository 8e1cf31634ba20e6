# run_cluster.py
# Same scenarios as run_simulation.py, but every node is a real HTTP server.
import argparse
import asyncio

from benor.config import configure_logging, get_settings
from benor.launcher import LocalCluster
import simulate_configs as configs


async def main(scenario: str, seed=None):
    settings = get_settings()
    cfg = configs.get_scenario(scenario)
    cluster = LocalCluster(
        n=cfg["n"],
        f=cfg["f"],
        initial_values=cfg["initial_values"],
        faulty=cfg["faulty"],
        settings=settings,
        seed=seed,
    )
    await cluster.launch()
    try:
        await cluster.start_consensus()
        states = await cluster.wait_for_decision(timeout=settings.run_timeout)
        await cluster.stop_consensus()
    finally:
        await cluster.close()

    print("Cluster finished.")
    for node_id, state in sorted(states.items()):
        print(f"  node {node_id} @ {settings.node_url(node_id)}: {state}")
    return states


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run consensus over localhost HTTP node servers")
    parser.add_argument("--scenario", default="faulty_one", choices=sorted(configs.SCENARIOS))
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    configure_logging(get_settings().log_level)
    asyncio.run(main(args.scenario, seed=args.seed))
