"""
fhedca CLI - Command Line Interface for private batched DCA

Main entry point for all CLI commands. Every command runs against an
in-process demo deployment.
"""

import asyncio
import time

import click

from fhedca.utils.logger import setup_logging


def _build_deployment(users: int, k_min: int, window: int, fee_bps: int, per_buy: int):
    """Deploy the stack and enroll `users` fresh addresses."""
    from fhedca.core.config import AggregatorConfig, ExecutorConfig
    from fhedca.core.deployment import deploy_demo
    from fhedca.core.intent import DcaParams
    from fhedca.crypto import random_address

    deployment = deploy_demo(
        aggregator_config=AggregatorConfig(k_min=k_min, time_window_secs=window),
        executor_config=ExecutorConfig(keeper_fee_bps=fee_bps),
    )
    now = deployment.chain.timestamp
    params = DcaParams(
        budget=per_buy * 10,
        per_buy=per_buy,
        frequency=86_400,
        start=now,
        end=now + 30 * 86_400,
    )
    for _ in range(users):
        deployment.enroll(random_address(), params)
    return deployment


def deployment_options(func):
    """Options shared by every command that builds a demo deployment."""
    func = click.option("--users", default=3, show_default=True, help="Users enrolled in the batch")(func)
    func = click.option("--k-min", default=3, show_default=True, help="Minimum batch size")(func)
    func = click.option("--window", default=60, show_default=True, help="Time window (seconds)")(func)
    func = click.option("--fee-bps", default=10, show_default=True, help="Keeper fee (basis points)")(func)
    func = click.option("--per-buy", default=10**18, show_default=True, help="Per-buy amount per user")(func)
    return func


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug):
    """fhedca - Private batched dollar-cost averaging"""
    import logging

    level = logging.DEBUG if debug else logging.INFO
    setup_logging(level=level)

    ctx.ensure_object(dict)


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
@deployment_options
def demo(users, k_min, window, fee_bps, per_buy):
    """Enroll users, execute one batch and show the aggregate result"""
    from fhedca.core.events import BatchExecuted
    from fhedca.crypto import bytes_to_hex, generate_keypair
    from fhedca.keeper import Keeper, LocalExecutorClient, PublicDecryptionSource

    click.echo("=" * 60)
    click.echo("  FHEDCA - PRIVATE BATCHED DCA DEMO")
    click.echo("=" * 60)
    click.echo()

    click.echo(f"📦 Deploying and enrolling {users} users...")
    d = _build_deployment(users, k_min, window, fee_bps, per_buy)
    by_count, by_time = d.executor.is_ready()
    click.echo(f"  ✓ Batch count: {d.aggregator.batch_count(d.token_in.address, d.token_out.address)}")
    click.echo(f"  export TOKEN_IN=\"{bytes_to_hex(d.token_in.address)}\"")
    click.echo(f"  export TOKEN_OUT=\"{bytes_to_hex(d.token_out.address)}\"")
    click.echo(f"  export EXECUTOR_ADDRESS=\"{bytes_to_hex(d.executor.address)}\"")
    click.echo(f"  ✓ Ready: by_count={by_count}, by_time={by_time}")
    click.echo()

    if not (by_count or by_time):
        click.echo(f"⏳ Advancing clock {window + 1}s past the time window...")
        d.chain.advance_time(window + 1)
        by_count, by_time = d.executor.is_ready()
        click.echo(f"  ✓ Ready: by_count={by_count}, by_time={by_time}")
        click.echo()

    click.echo("🤖 Running one keeper iteration...")
    keeper_key = generate_keypair()
    d.authorize_keeper(keeper_key.address)
    client = LocalExecutorClient(d.executor, keeper_key.address)
    keeper = Keeper(client, PublicDecryptionSource(client, d.fhe), name="mUSD/mWETH")
    outcome, _ = asyncio.run(keeper.run_once())
    click.echo(f"  ✓ Outcome: {outcome.value}")
    click.echo()

    executed = d.chain.events(BatchExecuted)
    if executed:
        event = executed[-1].event
        click.echo("📊 Aggregate result:")
        click.echo(f"  Contributors: {event.count}")
        click.echo(f"  Amount in:    {event.amount_in}")
        click.echo(f"  Amount out:   {event.amount_out}")
        click.echo(f"  Keeper fee:   {event.fee}")
        click.echo(f"  Pool credit:  {d.executor.pool_credit}")
        click.echo()
    click.echo("✅ Demo complete!")


# =============================================================================
# Status Command
# =============================================================================


@cli.command("status")
@deployment_options
@click.option("--advance", default=0, show_default=True, help="Seconds to advance the clock")
def status(users, k_min, window, fee_bps, per_buy, advance):
    """Show batch readiness for a demo deployment"""
    d = _build_deployment(users, k_min, window, fee_bps, per_buy)
    if advance:
        d.chain.advance_time(advance)

    by_count, by_time = d.executor.is_ready()
    click.echo("Batch Status")
    click.echo("-" * 40)
    click.echo(f"  Count:         {d.aggregator.batch_count(d.token_in.address, d.token_out.address)}")
    click.echo(f"  k_min:         {d.aggregator.k_min}")
    click.echo(f"  Time window:   {d.aggregator.time_window_secs}s")
    click.echo(f"  Ready (count): {by_count}")
    click.echo(f"  Ready (time):  {by_time}")


# =============================================================================
# Keeper Commands
# =============================================================================


@cli.group()
def keeper():
    """Keeper commands"""
    pass


@keeper.command("run")
@deployment_options
@click.option("--iterations", default=None, type=int, help="Stop after N iterations")
@click.option("--env-file", default=None, help="Path to a .env file")
@click.option("--decrypt/--fixed-amount", default=True, help="Decrypt the batch sum or use DEMO_DECRYPTED_AMOUNT")
def keeper_run(users, k_min, window, fee_bps, per_buy, iterations, env_file, decrypt):
    """Run the keeper loop against a demo deployment"""
    from fhedca.crypto import bytes_to_hex, generate_keypair
    from fhedca.keeper import (
        FixedAmountSource,
        Keeper,
        LocalExecutorClient,
        PublicDecryptionSource,
        load_keeper_settings,
    )

    settings = load_keeper_settings(env_file)
    d = _build_deployment(users, k_min, window, fee_bps, per_buy)

    if settings.executor_address and settings.executor_address.lower() != bytes_to_hex(d.executor.address):
        click.echo(
            f"⚠️  EXECUTOR_ADDRESS {settings.executor_address} is not on the in-process chain; "
            f"driving demo executor {bytes_to_hex(d.executor.address)}"
        )

    keeper_key = generate_keypair()
    d.authorize_keeper(keeper_key.address)
    client = LocalExecutorClient(d.executor, keeper_key.address)
    if decrypt:
        source = PublicDecryptionSource(client, d.fhe)
    else:
        source = FixedAmountSource(settings.decrypted_amount)

    async def run_keeper():
        k = Keeper(client, source, settings, name=settings.pair_label() or "mUSD/mWETH")
        k.install_signal_handlers()
        return await k.run(max_iterations=iterations)

    started = time.monotonic()
    stats = asyncio.run(run_keeper())
    click.echo(f"Keeper stopped after {time.monotonic() - started:.1f}s: {stats.to_dict()}")


if __name__ == "__main__":
    cli()
