"""Integrity gate for tick snapshots.

An invalid tick is still shown (marked partial) but never feeds the
baseline.
"""

from typing import Iterable, List, Optional

from ..models.app_state import CurrentIntervalSnapshot, IntegrityResult
from ..models.events import TransferEvent


def _is_non_negative_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def validate_interval(
    snapshot: CurrentIntervalSnapshot,
    events: Iterable[TransferEvent],
    previous_supply: Optional[int],
    current_supply: Optional[int],
) -> IntegrityResult:
    """Check a tick snapshot for internal consistency.

    Args:
        snapshot: Snapshot built from the tick's metrics (share in percent).
        events: Events parsed in the tick.
        previous_supply: Raw supply seen on the previous tick, if any.
        current_supply: Raw supply seen on this tick, if any.

    Returns:
        IntegrityResult listing every violated check.
    """
    errors: List[str] = []

    share = snapshot.dominant_wallet_share
    if share < 0 or share > 100:
        errors.append(f"dominant_wallet_share out of range: {share}")

    if not _is_non_negative_int(snapshot.transfers):
        errors.append(f"transfers must be non-negative integer: {snapshot.transfers}")
    if not _is_non_negative_int(snapshot.unique_wallets):
        errors.append(f"unique_wallets must be non-negative integer: {snapshot.unique_wallets}")

    if snapshot.transfers == 0:
        if snapshot.avg_transfer_size != 0:
            errors.append(
                f"avg_transfer_size must be 0 when transfers = 0: {snapshot.avg_transfer_size}"
            )
        if snapshot.total_volume != 0:
            errors.append(f"total_volume must be 0 when transfers = 0: {snapshot.total_volume}")

    if previous_supply is not None and current_supply is not None:
        kinds = {e.type for e in events}
        if current_supply > previous_supply and "mint" not in kinds:
            errors.append(
                f"supply increased from {previous_supply} to {current_supply} "
                f"but no mint events found"
            )
        elif current_supply < previous_supply and "burn" not in kinds:
            errors.append(
                f"supply decreased from {previous_supply} to {current_supply} "
                f"but no burn events found"
            )

    return IntegrityResult(valid=not errors, errors=tuple(errors))
