"""
Contract ABIs for the genomic data controller and its reward token.

Only the members the custody pipeline touches are listed.
"""


def _event(name, inputs):
    return {
        "anonymous": False,
        "name": name,
        "type": "event",
        "inputs": [
            {"indexed": False, "name": n, "type": t, "internalType": t}
            for n, t in inputs
        ],
    }


def _function(name, inputs, outputs, mutability="nonpayable"):
    return {
        "name": name,
        "type": "function",
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t, "internalType": t} for n, t in inputs],
        "outputs": outputs,
    }


UPLOAD_SESSION_TUPLE = {
    "name": "",
    "type": "tuple",
    "internalType": "struct Controller.UploadSession",
    "components": [
        {"name": "id", "type": "uint256", "internalType": "uint256"},
        {"name": "user", "type": "address", "internalType": "address"},
        {"name": "proof", "type": "string", "internalType": "string"},
        {"name": "confirmed", "type": "bool", "internalType": "bool"},
    ],
}

CONTROLLER_ABI = [
    _function(
        "uploadData",
        [("docId", "string")],
        [{"name": "", "type": "uint256", "internalType": "uint256"}],
    ),
    _function(
        "confirm",
        [
            ("docId", "string"),
            ("contentHash", "string"),
            ("proof", "string"),
            ("sessionId", "uint256"),
            ("riskScore", "uint256"),
        ],
        [],
    ),
    _function("getSession", [("sessionId", "uint256")], [UPLOAD_SESSION_TUPLE], "view"),
    _function("geneNFT", [], [{"name": "", "type": "address", "internalType": "contract GeneNFT"}], "view"),
    _function("pcspToken", [], [{"name": "", "type": "address", "internalType": "contract PostCovidStrokePrevention"}], "view"),
    _event("UploadData", [("docId", "string"), ("sessionId", "uint256")]),
    _event("GeneNFTMinted", [("owner", "address"), ("tokenId", "uint256")]),
    _event("PCSPRewarded", [("user", "address"), ("amount", "uint256")]),
]

TOKEN_ABI = [
    _function(
        "balanceOf",
        [("account", "address")],
        [{"name": "", "type": "uint256", "internalType": "uint256"}],
        "view",
    ),
]

# Reward units paid per confirmed session, by risk level.
REWARD_SCHEDULE = {1: 15000, 2: 3000, 3: 225, 4: 30}
