# simulate_configs.py
# Pre-defined simulation scenarios
def config_basic():
    return {
        "n": 4,
        "f": 0,
        "faulty": [],                 # list of node indices that stay silent
        "initial_values": [1, 1, 1, 1],
    }

def config_faulty_one():
    c = config_basic()
    c["f"] = 1
    c["faulty"] = [3]
    c["initial_values"] = [0, 0, 1, 1]  # faulty node's bit is never used
    return c

def config_split():
    # 4 honest nodes split 2/2: round 1 proposals tie and go to the coin
    return {
        "n": 5,
        "f": 1,
        "faulty": [4],
        "initial_values": [0, 0, 1, 1, 0],
    }

def config_large():
    c = config_basic()
    c["n"] = 10
    c["f"] = 3
    c["faulty"] = [7, 8, 9]
    c["initial_values"] = [0, 1, 0, 1, 1, 0, 1, 0, 0, 1]
    return c

SCENARIOS = {
    "basic": config_basic,
    "faulty_one": config_faulty_one,
    "split": config_split,
    "large": config_large,
}

def get_scenario(name):
    try:
        return SCENARIOS[name]()
    except KeyError:
        raise KeyError(f"unknown scenario {name!r}, choose from {sorted(SCENARIOS)}") from None
