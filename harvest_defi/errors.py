"""Harvest SDK exceptions.

- Not found errors are normal outcomes of a lookup, e.g. a typo in a vault name

- Precondition errors are raised before we send a transaction that would revert

- Web3 and HTTP errors are not wrapped and propagate as is
"""


class HarvestError(Exception):
    """Base class for all Harvest SDK errors."""


class HarvestConfigurationError(HarvestError):
    """The SDK was created without a chain or a connection."""


class MissingAddressError(HarvestError, ValueError):
    """No address given and the connection has no account to default to."""


class HarvestNotFoundError(HarvestError, LookupError):
    """Catalog lookup did not match anything.

    The key we looked with is in :py:attr:`key`.
    """

    def __init__(self, key, message: str | None = None):
        self.key = key
        super().__init__(message or f"Could not find anything by {key}")


class InvalidVaultNameError(HarvestNotFoundError):
    """No vault with this name."""


class InvalidVaultAddressError(HarvestNotFoundError):
    """No vault at this address."""


class InvalidVaultTokensError(HarvestNotFoundError):
    """No vault with this exact set of underlying tokens."""


class InvalidVaultPoolError(HarvestNotFoundError):
    """No vault is staked in this pool."""


class InvalidPoolNameError(HarvestNotFoundError):
    """No pool with this name."""


class InvalidPoolVaultError(HarvestNotFoundError):
    """No pool accepts the shares of this vault."""


class InvalidTokenSymbolError(HarvestNotFoundError):
    """No token with this symbol or name."""


class InvalidTokenAddressError(HarvestNotFoundError):
    """No token at this address."""


class HarvestPreconditionError(HarvestError):
    """A check before a transaction failed and the transaction was not sent."""


class InvalidAmountError(HarvestPreconditionError):
    """Zero or negative amount, or more than the share balance to withdraw."""


class InvalidTokenAmountsError(HarvestPreconditionError):
    """Token amounts do not cover both tokens of a Uniswap v3 vault."""


class InsufficientBalanceError(HarvestPreconditionError):
    """Not enough underlying token to approve or deposit."""


class InsufficientApprovalError(HarvestPreconditionError):
    """The vault is not approved to spend enough underlying token."""


class InsufficientVaultBalanceError(HarvestPreconditionError):
    """Not enough vault shares to stake."""


class InsufficientPoolBalanceError(HarvestPreconditionError):
    """Not enough staked in a pool to unstake."""


class ReadOnlyConnection(HarvestError):
    """Tried to send a transaction without an account to send it from."""
