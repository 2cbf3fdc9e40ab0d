"""GeoStake CLI."""
import asyncio
import sys
from typing import List, Optional, Tuple

import click
from loguru import logger

from .core.abi import NATIVE_TOKEN_ADDRESS
from .core.chain import GeoStakeContract
from .core.config import SECRET_FIELDS, GeoStakeConfig, load_config, update_config
from .core.eligibility import Eligibility, evaluate
from .core.errors import ChainError, GeoStakeError
from .core.geo import Position, distance_meters
from .core.location import HTTPLocationProvider, LocationService, StaticLocationProvider
from .core.rewards import bps_to_percent, format_token_amount
from .core.status import StakeStatus, describe_status
from .core.store import StakeStore
from .core.timing import utcnow
from .core.tracker import StakeTracker
from .core.workflow import StakeWorkflow, preview_split


def setup_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper(),
               format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}")


def _fail(message: str) -> None:
    logger.error(message)
    sys.exit(1)


def _location_service(config: GeoStakeConfig, lat: Optional[float],
                      lon: Optional[float]) -> LocationService:
    if lat is not None and lon is not None:
        provider = StaticLocationProvider(Position(lat, lon))
    elif config.location_url:
        provider = HTTPLocationProvider(config.location_url)
    else:
        provider = StaticLocationProvider()
    return LocationService(provider, timeout=config.location_timeout,
                           max_age=config.location_max_age)


def _print_views(views: List[Eligibility]) -> None:
    if not views:
        click.echo("No stakes found")
        return
    click.echo("-" * 96)
    click.echo(f"{'ID':<8}{'Amount':<22}{'Status':<10}{'Remaining':<14}{'Location':<26}{'Action':<16}")
    click.echo("-" * 96)
    for view in views:
        stake = view.stake
        action = "claim" if view.can_claim else "refund" if view.can_refund else ""
        if view.is_owner:
            action = f"{action} (yours)".strip()
        click.echo(
            f"{stake.stake_id:<8}"
            f"{stake.amount + ' ' + stake.token_symbol:<22}"
            f"{view.status.label:<10}"
            f"{view.time_remaining:<14}"
            f"{str(stake.position):<26}"
            f"{action:<16}"
        )


@click.group()
@click.version_option(package_name="geostake")
@click.pass_context
def cli(ctx):
    """GeoStake: stake tokens on a location, claim them by being there."""
    config = load_config()
    setup_logging(config.log_level)
    ctx.obj = config


@cli.command(context_settings={"ignore_unknown_options": True})
@click.argument('lat1', type=float)
@click.argument('lon1', type=float)
@click.argument('lat2', type=float)
@click.argument('lon2', type=float)
@click.pass_obj
def distance(config: GeoStakeConfig, lat1: float, lon1: float, lat2: float, lon2: float):
    """Show the distance in meters between two points."""
    meters = distance_meters(lat1, lon1, lat2, lon2)
    within = "within" if meters <= config.claim_radius_m else "outside"
    click.echo(f"{meters:.1f}m ({within} the {config.claim_radius_m:g}m claim radius)")


@cli.group(name="config")
def config_cmd():
    """Show or change settings."""


@config_cmd.command(name="show")
@click.pass_obj
def config_show(config: GeoStakeConfig):
    """Show the current settings."""
    for key, value in config.model_dump().items():
        if key in SECRET_FIELDS and value:
            value = "********"
        click.echo(f"{key}: {value}")


@config_cmd.command(name="set")
@click.argument('key')
@click.argument('value')
def config_set(key: str, value: str):
    """Persist a setting to the config file."""
    if key not in GeoStakeConfig.model_fields:
        _fail(f"Unknown setting {key}")
    if key in SECRET_FIELDS:
        _fail(f"{key} is secret; set GEOSTAKE_{key.upper()} in the environment instead")
    try:
        path = update_config(key, value)
    except ValueError as e:
        _fail(f"Invalid value for {key}: {e}")
    logger.info(f"Saved {key} to {path}")


@cli.group()
def stakes():
    """Browse stakes."""


@stakes.command(name="list")
@click.option('--mine', is_flag=True, help='Only stakes created by your account')
@click.option('--area', nargs=4, type=float, default=None,
              help='Bounding box: MIN_LAT MAX_LAT MIN_LON MAX_LON')
@click.pass_obj
def stakes_list(config: GeoStakeConfig, mine: bool, area: Optional[Tuple[float, ...]]):
    """List unsettled stakes, or your own stakes with --mine."""
    async def run():
        async with StakeStore(config) as store:
            if mine:
                if not config.account_address:
                    raise GeoStakeError("Set account_address to list your stakes")
                return await store.get_stakes_by_staker(config.account_address)
            if area:
                return await store.get_stakes_in_area(*area)
            return await store.get_active_stakes()

    try:
        records = asyncio.run(run())
    except GeoStakeError as e:
        _fail(f"Failed to list stakes: {e}")
    now = utcnow()
    _print_views([evaluate(s, config.account_address, now) for s in records])


@stakes.command(name="show")
@click.argument('stake_id', type=int)
@click.pass_obj
def stakes_show(config: GeoStakeConfig, stake_id: int):
    """Show a stake, its status and what you can do with it."""
    async def run():
        async with StakeStore(config) as store:
            stake = await store.get_stake(stake_id)
        if stake is None:
            raise GeoStakeError(f"Stake #{stake_id} not found")
        chain_state = split = None
        if config.contract_address:
            contract = GeoStakeContract(config)
            try:
                chain_state = await contract.get_stake(stake_id)
                split = await preview_split(contract, stake)
            except ChainError as e:
                logger.warning(f"On-chain state unavailable: {e}")
        return stake, chain_state, split

    try:
        stake, chain_state, split = asyncio.run(run())
    except GeoStakeError as e:
        _fail(str(e))

    view = evaluate(stake, config.account_address, utcnow())
    click.echo(f"\nStake #{stake.stake_id}")
    click.echo("-" * 60)
    click.echo(f"Amount: {stake.amount} {stake.token_symbol}")
    click.echo(f"Staker: {stake.staker_address}{' (you)' if view.is_owner else ''}")
    click.echo(f"Location: {stake.position}")
    click.echo(f"Created: {stake.created_at:%Y-%m-%d %H:%M} UTC")
    click.echo(f"Expires: {stake.expires_at:%Y-%m-%d %H:%M} UTC ({view.time_remaining})")
    click.echo(f"Status: {view.status.label}")
    if stake.claimed:
        click.echo(f"Claimed by: {stake.claimed_by}")
        if stake.claimer_amount is not None:
            click.echo(f"Claimer received: {format_token_amount(int(stake.claimer_amount))} {stake.token_symbol}")
            click.echo(f"Staker reward: {format_token_amount(int(stake.staker_reward or 0))} {stake.token_symbol}")
    if chain_state is not None and chain_state.claimed != stake.is_settled:
        click.echo("Note: the database has not caught up with the contract yet")
    if split is not None and view.can_claim:
        click.echo(f"A claim pays {format_token_amount(split.claimer_amount)} {stake.token_symbol} "
                   f"to the claimer and {format_token_amount(split.staker_reward)} to the staker")
    click.echo(f"\n{describe_status(view.status, view.time_remaining)}")


@cli.command()
@click.option('--token', default=NATIVE_TOKEN_ADDRESS, help='Token address (default: native coin)')
@click.option('--symbol', default=None, help='Token symbol')
@click.option('--amount', required=True, help='Amount in token units, e.g. 0.5')
@click.option('--duration', default=24, type=click.IntRange(min=1), help='Hours the stake stays claimable')
@click.option('--lat', type=float, default=None, help='Latitude (default: current location)')
@click.option('--lon', type=float, default=None, help='Longitude (default: current location)')
@click.pass_obj
def stake(config: GeoStakeConfig, token: str, symbol: Optional[str], amount: str,
          duration: int, lat: Optional[float], lon: Optional[float]):
    """Stake tokens at a location."""
    symbol = symbol or config.native_symbol

    async def run():
        async with StakeStore(config) as store:
            workflow = StakeWorkflow(GeoStakeContract(config), store,
                                     _location_service(config, lat, lon), config)
            return await workflow.create_stake(token, symbol, amount, duration)

    try:
        record = asyncio.run(run())
    except (GeoStakeError, ValueError) as e:
        _fail(f"Staking failed: {e}")
    click.echo(f"Stake #{record.stake_id} created at {record.position}, "
               f"expires {record.expires_at:%Y-%m-%d %H:%M} UTC")
    url = config.explorer_tx_url(record.transaction_hash)
    if url:
        click.echo(url)


@cli.command()
@click.argument('stake_id', type=int)
@click.option('--lat', type=float, default=None, help='Your latitude (default: current location)')
@click.option('--lon', type=float, default=None, help='Your longitude (default: current location)')
@click.pass_obj
def claim(config: GeoStakeConfig, stake_id: int, lat: Optional[float], lon: Optional[float]):
    """Claim a stake you are standing next to."""
    async def run():
        async with StakeStore(config) as store:
            record = await store.get_stake(stake_id)
            if record is None:
                raise GeoStakeError(f"Stake #{stake_id} not found")
            workflow = StakeWorkflow(GeoStakeContract(config), store,
                                     _location_service(config, lat, lon), config)
            return record, await workflow.claim(record)

    try:
        record, result = asyncio.run(run())
    except GeoStakeError as e:
        _fail(f"Claim failed: {e}")
    click.echo(f"Claimed stake #{stake_id} from {round(result.distance_m)}m away")
    if result.split:
        click.echo(f"You received {format_token_amount(result.split.claimer_amount)} {record.token_symbol}")
    if not result.persisted:
        logger.warning("The claim is on chain but the database was not updated")


@cli.command()
@click.argument('stake_id', type=int)
@click.pass_obj
def refund(config: GeoStakeConfig, stake_id: int):
    """Refund one of your expired stakes."""
    async def run():
        async with StakeStore(config) as store:
            record = await store.get_stake(stake_id)
            if record is None:
                raise GeoStakeError(f"Stake #{stake_id} not found")
            workflow = StakeWorkflow(GeoStakeContract(config), store,
                                     _location_service(config, None, None), config)
            return await workflow.refund(record)

    try:
        result = asyncio.run(run())
    except GeoStakeError as e:
        _fail(f"Refund failed: {e}")
    click.echo(f"Refunded stake #{stake_id} ({result.tx_hash})")


@cli.group()
def rewards():
    """Staker rewards earned from claims of your stakes."""


@rewards.command(name="show")
@click.pass_obj
def rewards_show(config: GeoStakeConfig):
    """Show your reward balances."""
    if not config.account_address:
        _fail("Set account_address to see your rewards")

    async def run():
        async with StakeStore(config) as store:
            balances = await store.get_staker_rewards(config.account_address)
        bps = None
        if config.contract_address:
            try:
                bps = await GeoStakeContract(config).get_staker_reward_bps()
            except ChainError as e:
                logger.warning(f"Could not read reward percentage: {e}")
        return balances, bps

    try:
        balances, bps = asyncio.run(run())
    except GeoStakeError as e:
        _fail(f"Failed to load rewards: {e}")
    if bps is not None:
        click.echo(f"Stakers earn {bps_to_percent(bps)}% of each claimed stake")
    if not balances:
        click.echo("No rewards yet")
        return
    click.echo(f"{'Token':<12}{'Earned':<20}{'Withdrawn':<20}{'Available':<20}")
    for reward in balances:
        click.echo(
            f"{reward.token_symbol or reward.token_address[:10]:<12}"
            f"{format_token_amount(reward.total_earned):<20}"
            f"{format_token_amount(reward.total_withdrawn):<20}"
            f"{format_token_amount(reward.available_balance):<20}"
        )


@rewards.command(name="withdraw")
@click.argument('token')
@click.pass_obj
def rewards_withdraw(config: GeoStakeConfig, token: str):
    """Withdraw your available rewards for TOKEN (address)."""
    async def run():
        async with StakeStore(config) as store:
            contract = GeoStakeContract(config)
            balances = await store.get_staker_rewards(contract.sender)
            reward = next((r for r in balances if r.token_address.lower() == token.lower()), None)
            if reward is None:
                raise GeoStakeError(f"No rewards recorded for {token}")
            workflow = StakeWorkflow(contract, store, _location_service(config, None, None), config)
            amount = reward.available_balance
            return amount, reward, await workflow.withdraw_rewards(reward)

    try:
        amount, reward, result = asyncio.run(run())
    except (GeoStakeError, ValueError) as e:
        _fail(f"Withdrawal failed: {e}")
    click.echo(f"Withdrew {format_token_amount(amount)} {reward.token_symbol} ({result.tx_hash})")


@cli.command()
@click.option('--area', nargs=4, type=float, default=None,
              help='Bounding box: MIN_LAT MAX_LAT MIN_LON MAX_LON')
@click.pass_obj
def watch(config: GeoStakeConfig, area: Optional[Tuple[float, ...]]):
    """Watch active stakes, printing the list whenever it changes."""
    async def run():
        async with StakeStore(config) as store:
            tracker = StakeTracker(store, config.account_address,
                                   status_interval=config.status_interval,
                                   refresh_interval=config.refresh_interval,
                                   area=tuple(area) if area else None)
            tracker.add_listener(lambda views: _print_views(
                [v for v in views if v.status is StakeStatus.ACTIVE]))
            await tracker.start()
            try:
                while True:
                    await asyncio.sleep(3600)
            finally:
                await tracker.stop()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Stopped watching")
    except GeoStakeError as e:
        _fail(str(e))


if __name__ == "__main__":
    cli()
