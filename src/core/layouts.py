from dataclasses import dataclass
from typing import Optional
from construct import Struct, Int8ul, Int32ul, Int64ul, Flag, Bytes
from solders.pubkey import Pubkey

MINT_LAYOUT = Struct(
    "mint_authority_option" / Int32ul,
    "mint_authority" / Bytes(32),
    "supply" / Int64ul,
    "decimals" / Int8ul,
    "is_initialized" / Flag,
    "freeze_authority_option" / Int32ul,
    "freeze_authority" / Bytes(32),
)
MINT_LAYOUT_SIZE = 82

# key (1) + update authority (32) + mint (32)
METADATA_HEADER = Struct(
    "key" / Int8ul,
    "update_authority" / Bytes(32),
    "mint" / Bytes(32),
)
METADATA_NAME_OFFSET = 65

@dataclass
class MintAccount:
    mint_authority: Optional[str]
    supply: int
    decimals: int
    is_initialized: bool
    freeze_authority: Optional[str]

    @classmethod
    def from_buffer(cls, data: bytes) -> "MintAccount":
        """Parse SPL token mint data (Token-2022 extensions follow the same prefix)"""
        if len(data) < MINT_LAYOUT_SIZE:
            raise ValueError(f"Mint data too short: {len(data)} bytes")

        parsed = MINT_LAYOUT.parse(data[:MINT_LAYOUT_SIZE])
        if not parsed.is_initialized:
            raise ValueError("Mint account is not initialized")

        return cls(
            mint_authority=str(Pubkey(parsed.mint_authority)) if parsed.mint_authority_option else None,
            supply=parsed.supply,
            decimals=parsed.decimals,
            is_initialized=parsed.is_initialized,
            freeze_authority=str(Pubkey(parsed.freeze_authority)) if parsed.freeze_authority_option else None,
        )

@dataclass
class MetadataFieldLengths:
    """Declared lengths of the Metaplex name/symbol/uri strings; None when not readable"""
    name: Optional[int] = None
    symbol: Optional[int] = None
    uri: Optional[int] = None

    @classmethod
    def from_buffer(cls, data: bytes) -> "MetadataFieldLengths":
        METADATA_HEADER.parse(data)

        lengths = cls()
        name_offset = METADATA_NAME_OFFSET
        lengths.name = Int32ul.parse(data[name_offset:name_offset + 4])

        symbol_offset = name_offset + 4 + lengths.name
        if symbol_offset + 4 < len(data):
            lengths.symbol = Int32ul.parse(data[symbol_offset:symbol_offset + 4])
        else:
            return lengths

        uri_offset = symbol_offset + 4 + lengths.symbol
        if uri_offset + 4 < len(data):
            lengths.uri = Int32ul.parse(data[uri_offset:uri_offset + 4])

        return lengths

def metadata_pda(mint: Pubkey, program_id: Pubkey) -> Pubkey:
    """Derive the Metaplex metadata account for a mint"""
    pda, _ = Pubkey.find_program_address(
        [b"metadata", bytes(program_id), bytes(mint)],
        program_id,
    )
    return pda
