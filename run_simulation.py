# run_simulation.py
import argparse
import asyncio

from benor.config import configure_logging, get_settings
from benor.simulation import Simulation
import simulate_configs as configs


async def main(scenario: str, seed=None, timeout=None):
    cfg = configs.get_scenario(scenario)
    sim = Simulation.from_config(cfg, get_settings(), seed=seed)
    result = await sim.run(timeout=timeout or get_settings().run_timeout)

    print("Simulation finished.")
    for node_id, state in sorted(result.states.items()):
        tag = "faulty" if node_id in cfg["faulty"] else "live"
        print(f"  node {node_id} [{tag}]: {state}")
    print("All honest decided:", result.all_decided())
    print("Agreement:", result.agreement())
    return result


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run an in-process consensus simulation")
    parser.add_argument("--scenario", default="faulty_one", choices=sorted(configs.SCENARIOS))
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--timeout", type=float, default=None)
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()

    configure_logging(args.log_level or get_settings().log_level)
    asyncio.run(main(args.scenario, seed=args.seed, timeout=args.timeout))
