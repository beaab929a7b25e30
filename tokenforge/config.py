"""
Process wide configuration

Values are loaded once from the environment when the module is first imported.

- TOKENFORGE_NFT_MINT_PROGRAM_ID: base58 address the NFT mint program is deployed at
- TOKENFORGE_LOG_LEVEL: logging level name, e.g., INFO
"""

import os
from typing import Final

from solders.pubkey import Pubkey

DEFAULT_NFT_MINT_PROGRAM_ID: Final[str] = "BZC28tbriJNMVB1WpAsiAywUUQUCm7q6JfbzeTfXXgtz"

NFT_MINT_PROGRAM_ID: Final[Pubkey] = Pubkey.from_string(
    os.environ.get("TOKENFORGE_NFT_MINT_PROGRAM_ID", DEFAULT_NFT_MINT_PROGRAM_ID)
)

LOG_LEVEL: Final[str] = os.environ.get("TOKENFORGE_LOG_LEVEL", "WARNING").upper()
