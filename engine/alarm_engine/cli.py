"""
CLI for managing alarms and running the alarm engine
"""

import asyncio
import signal
import sys
from datetime import datetime
from typing import Optional

import click

from .config import AlarmEngineConfig
from .logging_utils import get_logger, setup_logging
from .models import DAY_NAMES, AlarmValidationError, ToneStyle
from .scheduler import format_relative, next_occurrence
from .store import AlarmStore
from .synth import ToneSynthesizer

logger = get_logger(__name__)


def _describe(alarm) -> str:
    days = ",".join(DAY_NAMES[d] for d in alarm.days) if alarm.days else "once"
    status = "on " if alarm.enabled else "off"
    label = f" {alarm.label}" if alarm.label else ""
    track = f" [{alarm.track_name or alarm.track_uri}]" if alarm.track_uri else ""
    return f"{alarm.id}  {status}  {alarm.time}  {days}{label}{track}"


@click.group()
@click.option('--log-level', default=None, help='Log level (defaults to LOG_LEVEL)')
@click.option('--log-format', default='text', type=click.Choice(['text', 'json']), help='Log format')
@click.pass_context
def cli(ctx, log_level, log_format):
    """WakeWave alarm engine CLI"""
    config = AlarmEngineConfig.from_env()
    setup_logging(log_level=log_level or config.log_level, log_format=log_format)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config
    ctx.obj['store'] = AlarmStore(config.alarms_file)


@cli.command(name='list')
@click.pass_context
def list_alarms(ctx):
    """List stored alarms"""
    alarms = ctx.obj['store'].list()
    if not alarms:
        click.echo("No alarms")
        return
    for alarm in alarms:
        click.echo(_describe(alarm))


@cli.command()
@click.argument('time')
@click.option('--day', '-d', 'days', multiple=True, type=click.IntRange(0, 6),
              help='Repeat on weekday (0=Sun..6=Sat); repeatable')
@click.option('--label', default='', help='Alarm label')
@click.option('--track-uri', default='', help='spotify:track:... to play')
@click.option('--track-name', default='', help='Track name for display')
@click.pass_context
def add(ctx, time, days, label, track_uri, track_name):
    """Create an alarm at TIME (HH:MM)"""
    try:
        alarm = ctx.obj['store'].create(time=time, days=list(days), label=label,
                                        track_uri=track_uri, track_name=track_name)
    except AlarmValidationError as e:
        click.echo(f"Invalid alarm: {e}", err=True)
        sys.exit(1)
    click.echo(f"Created {_describe(alarm)}")


@cli.command()
@click.argument('alarm_id')
@click.pass_context
def remove(ctx, alarm_id):
    """Delete an alarm"""
    if not ctx.obj['store'].delete(alarm_id):
        click.echo(f"Alarm '{alarm_id}' not found", err=True)
        sys.exit(1)
    click.echo(f"Deleted {alarm_id}")


def _set_enabled(ctx, alarm_id: str, enabled: bool) -> None:
    alarm = ctx.obj['store'].set_enabled(alarm_id, enabled)
    if alarm is None:
        click.echo(f"Alarm '{alarm_id}' not found", err=True)
        sys.exit(1)
    click.echo(_describe(alarm))


@cli.command()
@click.argument('alarm_id')
@click.pass_context
def enable(ctx, alarm_id):
    """Enable an alarm"""
    _set_enabled(ctx, alarm_id, True)


@cli.command()
@click.argument('alarm_id')
@click.pass_context
def disable(ctx, alarm_id):
    """Disable an alarm"""
    _set_enabled(ctx, alarm_id, False)


@cli.command(name='next')
@click.pass_context
def next_alarm(ctx):
    """Show the next alarm to fire"""
    upcoming = next_occurrence(ctx.obj['store'].list(), datetime.now())
    if upcoming is None:
        click.echo("No alarms enabled")
        return
    click.echo(f"{_describe(upcoming.alarm)}  at {upcoming.at:%a %H:%M}  (in {format_relative(upcoming.delta_ms)})")


@cli.command(name='render-tone')
@click.argument('output', type=click.Path(dir_okay=False, writable=True))
@click.option('--keepalive', is_flag=True, help='Render the silent keepalive loop instead')
@click.option('--style', type=click.Choice([s.value for s in ToneStyle]), default=None,
              help='Alarm tone pattern')
@click.pass_context
def render_tone(ctx, output, keepalive, style):
    """Write the synthesized alarm (or keepalive) tone to OUTPUT as WAV"""
    settings = ctx.obj['config'].tone
    if style:
        settings = settings.model_copy(update={"style": ToneStyle(style)})
    path = ToneSynthesizer(settings).write(output, keepalive=keepalive)
    click.echo(f"Wrote {path} ({path.stat().st_size} bytes)")


def handle_input(engine, stream, loop) -> Optional[str]:
    """
    Act on one line typed while the engine runs.

    Returns:
        "snooze", "dismiss", "eof", or None when nothing is ringing
    """
    line = stream.readline()
    if line == '':
        # Closed input stays readable forever; stop watching it
        loop.remove_reader(stream)
        logger.info("Input closed; alarms will ring until stopped")
        return "eof"
    if engine.ringing is None:
        return None
    if line.strip().lower() == 's':
        engine.snooze()
        click.echo(f"Snoozed for {engine.config.timings.snooze_minutes} minutes")
        return "snooze"
    engine.dismiss()
    click.echo("Dismissed")
    return "dismiss"


@cli.command()
@click.pass_context
def run(ctx):
    """Run the alarm engine until interrupted (Enter dismisses, 's' + Enter snoozes)"""
    from .engine import AlarmEngine

    engine = AlarmEngine(ctx.obj['config'], store=ctx.obj['store'])

    def on_ring(alarm):
        click.echo(f"\n*** {alarm.label or 'Alarm'} {alarm.time} ***  Enter = dismiss, s + Enter = snooze")

    async def main():
        loop = asyncio.get_running_loop()
        stopped = asyncio.Event()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stopped.set)
            except (NotImplementedError, RuntimeError):
                pass
        try:
            loop.add_reader(sys.stdin, handle_input, engine, sys.stdin, loop)
        except (NotImplementedError, ValueError, OSError):
            logger.warning("Interactive input unavailable; alarms will ring until stopped")

        # Starting from the command line counts as the user gesture
        engine.unlock_audio()
        engine.start(on_ring=on_ring)
        upcoming = engine.next_alarm()
        if upcoming:
            click.echo(f"Next alarm at {upcoming.at:%a %H:%M} (in {format_relative(upcoming.delta_ms)})")
        try:
            await stopped.wait()
        finally:
            engine.shutdown()

    asyncio.run(main())


if __name__ == '__main__':
    cli()
