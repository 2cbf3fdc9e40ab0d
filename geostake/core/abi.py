"""Contract ABIs and gas limits."""

NATIVE_TOKEN_ADDRESS = "0x0000000000000000000000000000000000000000"


def _fn(name, inputs, outputs=(), mutability="nonpayable"):
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
        "stateMutability": mutability,
    }


def _event(name, inputs):
    return {
        "type": "event",
        "name": name,
        "anonymous": False,
        "inputs": [{"name": n, "type": t, "indexed": i} for n, t, i in inputs],
    }


GEOSTAKE_ABI = [
    _fn("stake",
        [("token", "address"), ("amount", "uint256"), ("latitude", "int256"),
         ("longitude", "int256"), ("duration", "uint256")],
        [("stakeId", "uint256")],
        mutability="payable"),
    _fn("claim", [("stakeId", "uint256")]),
    _fn("refund", [("stakeId", "uint256")]),
    _fn("withdrawRewards", [("token", "address")]),
    {
        "type": "function",
        "name": "getStake",
        "inputs": [{"name": "stakeId", "type": "uint256"}],
        "outputs": [{
            "name": "",
            "type": "tuple",
            "components": [
                {"name": "staker", "type": "address"},
                {"name": "token", "type": "address"},
                {"name": "amount", "type": "uint256"},
                {"name": "latitude", "type": "int256"},
                {"name": "longitude", "type": "int256"},
                {"name": "expiresAt", "type": "uint256"},
                {"name": "claimed", "type": "bool"},
            ],
        }],
        "stateMutability": "view",
    },
    _fn("stakerRewardPercentage", [], [("", "uint256")], mutability="view"),
    _event("Staked", [
        ("stakeId", "uint256", True),
        ("staker", "address", True),
        ("token", "address", True),
        ("amount", "uint256", False),
        ("latitude", "int256", False),
        ("longitude", "int256", False),
        ("expiresAt", "uint256", False),
    ]),
    _event("StakeClaimed", [
        ("stakeId", "uint256", True),
        ("claimer", "address", True),
        ("claimerAmount", "uint256", False),
        ("stakerReward", "uint256", False),
    ]),
    _event("StakeRefunded", [
        ("stakeId", "uint256", True),
        ("staker", "address", True),
        ("amount", "uint256", False),
    ]),
    _event("RewardsWithdrawn", [
        ("staker", "address", True),
        ("token", "address", True),
        ("amount", "uint256", False),
    ]),
]

ERC20_ABI = [
    _fn("approve", [("spender", "address"), ("amount", "uint256")], [("", "bool")]),
    _fn("allowance", [("owner", "address"), ("spender", "address")], [("", "uint256")],
        mutability="view"),
    _fn("symbol", [], [("", "string")], mutability="view"),
    _fn("decimals", [], [("", "uint8")], mutability="view"),
]

# Used when gas estimation fails
GAS_LIMITS = {
    "approve": 60_000,
    "stake_native": 200_000,
    "stake_erc20": 250_000,
    "claim": 180_000,
    "refund": 150_000,
    "withdrawRewards": 150_000,
}
