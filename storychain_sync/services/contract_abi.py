"""
StoryChain contract ABI fragments and event topic table.
"""

from typing import Dict, List, Tuple

from web3 import Web3


# name -> (canonical signature, [(arg name, abi type, indexed)])
EVENT_DEFINITIONS: Dict[str, Tuple[str, List[Tuple[str, str, bool]]]] = {
    "StoryCreated": (
        "StoryCreated(uint256,address,string)",
        [("storyId", "uint256", True), ("author", "address", True), ("ipfsHash", "string", False)],
    ),
    "ChapterCreated": (
        "ChapterCreated(uint256,uint256,uint256,address,string)",
        [
            ("storyId", "uint256", True),
            ("chapterId", "uint256", True),
            ("parentId", "uint256", False),
            ("author", "address", True),
            ("ipfsHash", "string", False),
        ],
    ),
    "ChapterForked": (
        "ChapterForked(uint256,uint256,uint256,address,string)",
        [
            ("storyId", "uint256", True),
            ("chapterId", "uint256", True),
            ("parentId", "uint256", False),
            ("author", "address", True),
            ("ipfsHash", "string", False),
        ],
    ),
    "StoryLiked": (
        "StoryLiked(uint256,address,uint256)",
        [("storyId", "uint256", True), ("liker", "address", True), ("newLikeCount", "uint256", False)],
    ),
    "ChapterLiked": (
        "ChapterLiked(uint256,address,uint256)",
        [("chapterId", "uint256", True), ("liker", "address", True), ("newLikeCount", "uint256", False)],
    ),
    # Deployed contract spells it in lower camel case
    "tipSent": (
        "tipSent(uint256,uint256,address,uint256)",
        [
            ("storyId", "uint256", True),
            ("chapterId", "uint256", True),
            ("tipper", "address", True),
            ("amount", "uint256", False),
        ],
    ),
    "TipSent": (
        "TipSent(uint256,uint256,address,uint256)",
        [
            ("storyId", "uint256", True),
            ("chapterId", "uint256", True),
            ("tipper", "address", True),
            ("amount", "uint256", False),
        ],
    ),
    "CommentAdded": (
        "CommentAdded(uint256,address)",
        [("chapterId", "uint256", True), ("commenter", "address", True)],
    ),
}


def event_topic(signature: str) -> str:
    """topic0 for a canonical event signature."""
    return "0x" + Web3.keccak(text=signature).hex().removeprefix("0x")


EVENT_TOPICS: Dict[str, str] = {
    event_topic(signature): name for name, (signature, _) in EVENT_DEFINITIONS.items()
}


# Contract reads used for enrichment and repair
STORYCHAIN_READ_ABI = [
    {
        "type": "function",
        "name": "getChapter",
        "stateMutability": "view",
        "inputs": [{"name": "chapterId", "type": "uint256"}],
        "outputs": [
            {
                "name": "",
                "type": "tuple",
                "components": [
                    {"name": "id", "type": "uint256"},
                    {"name": "parentId", "type": "uint256"},
                    {"name": "storyId", "type": "uint256"},
                    {"name": "author", "type": "address"},
                    {"name": "ipfsHash", "type": "string"},
                    {"name": "createdTime", "type": "uint256"},
                    {"name": "likes", "type": "uint256"},
                    {"name": "forkCount", "type": "uint256"},
                    {"name": "forkFee", "type": "uint256"},
                    {"name": "totalForkFees", "type": "uint256"},
                    {"name": "totalTips", "type": "uint256"},
                    {"name": "totalTipCount", "type": "uint256"},
                    {"name": "chapterNumber", "type": "uint256"},
                    {"name": "childChapterIds", "type": "uint256[]"},
                ],
            }
        ],
    },
    {
        "type": "function",
        "name": "comments",
        "stateMutability": "view",
        "inputs": [
            {"name": "tokenId", "type": "uint256"},
            {"name": "index", "type": "uint256"},
        ],
        "outputs": [
            {"name": "tokenId", "type": "uint256"},
            {"name": "commenter", "type": "address"},
            {"name": "ipfsHash", "type": "string"},
            {"name": "timestamp", "type": "uint256"},
        ],
    },
]
