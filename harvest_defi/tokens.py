"""Token catalog."""

from typing import Iterable, Iterator

from eth_typing import HexAddress

from harvest_defi.errors import InvalidTokenAddressError, InvalidTokenSymbolError
from harvest_defi.token import Token


class Tokens:
    """All ERC-20 tokens Harvest lists on one chain.

    - Lookups by symbol, Harvest entry name and address are case-insensitive

    - Several Harvest entries may share an underlying address, the first one is listed

    - Harvest lists Uniswap v3 positions with a list of addresses in ``tokenAddress``.
      These are not a single spendable balance and :py:func:`harvest_defi.metadata.build_tokens` leaves them out.
    """

    def __init__(self, tokens: Iterable[Token]):
        self.tokens: list[Token] = []
        self.by_symbol: dict[str, Token] = {}
        self.by_name: dict[str, Token] = {}
        self.by_address: dict[str, Token] = {}
        for entry in tokens:
            token = self.by_address.get(entry.address_lower)
            if token is None:
                token = self.by_address[entry.address_lower] = entry
                self.tokens.append(token)
            if entry.symbol:
                self.by_symbol.setdefault(entry.symbol.lower(), token)
            if entry.name:
                self.by_name.setdefault(entry.name.lower(), token)

    def __repr__(self):
        return f"<Tokens {len(self.tokens)} tokens>"

    def __len__(self):
        return len(self.tokens)

    def __iter__(self) -> Iterator[Token]:
        return iter(self.tokens)

    def __contains__(self, address: str) -> bool:
        return address.lower() in self.by_address

    def find_by_address(self, address: HexAddress | str) -> Token:
        """Get a token by its contract address, any case.

        :raise InvalidTokenAddressError:
            Not listed
        """
        token = self.by_address.get(address.lower())
        if token is None:
            raise InvalidTokenAddressError(address, f"Could not find token by address {address}")
        return token

    def find_by_symbol(self, symbol: str) -> Token:
        """Get a token by its symbol or Harvest entry name, any case.

        Symbol match wins over name match.

        :raise InvalidTokenSymbolError:
            Not listed
        """
        key = symbol.lower()
        token = self.by_symbol.get(key) or self.by_name.get(key)
        if token is None:
            raise InvalidTokenSymbolError(symbol, f"Could not find token by symbol {symbol}")
        return token

    def get_by_address(self, address: HexAddress | str) -> Token | None:
        """Get a token by its contract address, or ``None``."""
        return self.by_address.get(address.lower())
