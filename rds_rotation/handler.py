import asyncio
import json
import logging
import re
import sys

from .context import RotationContext
from .exceptions import RotationError, RotationFailed, UnexpectedEventShape, MalformedEventPayload
from .models import Trigger, TriggerKind
from .rotation import rotate_all, rotate_instance
from .utils.config import RotationConfig
from .utils.logger import get_logger, log

INITIAL_SYNC_COMMAND = 'initial_sync'
SCHEDULED_SOURCE = 'aws.events'
SNS_EVENT_SOURCE = 'aws:sns'
BACKUP_FINISHED_EVENT = re.compile(r'#RDS-EVENT-0002$')
USAGE = f"Usage: rds-dr-rotation [{INITIAL_SYNC_COMMAND}]"


def split_records(event):
    """A Lambda event is either a batch under 'Records' or a single record."""
    if isinstance(event, dict) and isinstance(event.get('Records'), list):
        return event['Records']
    return [event]


def parse_trigger(record):
    """
    Work out what a trigger record asks for.

    :return: The Trigger, or None for an RDS event that does not start a rotation.
    :raises MalformedEventPayload: If an SNS record carries an unreadable RDS event.
    :raises UnexpectedEventShape: If the record matches no known trigger.
    """
    if not isinstance(record, dict):
        raise UnexpectedEventShape(f"Encountered an unexpected event: {json.dumps(record, default=str)}")
    if record.get('command') == INITIAL_SYNC_COMMAND:
        return Trigger(TriggerKind.INITIAL_SYNC)
    if record.get('source') == SCHEDULED_SOURCE:
        return Trigger(TriggerKind.SCHEDULED)
    if record.get('EventSource') == SNS_EVENT_SOURCE:
        try:
            message = json.loads(record['Sns']['Message'])
            event_id = message['Event ID']
            instance_id = message['Source ID']
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedEventPayload(f"Could not read RDS event notification: {e!r}")
        if not isinstance(instance_id, str) or not instance_id:
            raise MalformedEventPayload(f"RDS event notification has no source instance: {instance_id!r}")
        if not BACKUP_FINISHED_EVENT.search(str(event_id)):
            log(logging.INFO, f"Ignoring RDS event {event_id}", instance_id)
            return None
        return Trigger(TriggerKind.INSTANCE_EVENT, instance_id=instance_id)
    raise UnexpectedEventShape(f"Encountered an unexpected event: {json.dumps(record, default=str)}")


async def run_trigger(ctx, trigger):
    if trigger.kind is TriggerKind.INSTANCE_EVENT:
        log(logging.INFO, 'Kicking off snapshot rotation for database', trigger.instance_id)
        return [await rotate_instance(ctx, trigger.instance_id, trigger.age_check_disabled)]
    if trigger.kind is TriggerKind.INITIAL_SYNC:
        log(logging.INFO, f"Received command {INITIAL_SYNC_COMMAND}")
    return await rotate_all(ctx, trigger.age_check_disabled)


async def process_record(ctx, record):
    try:
        trigger = parse_trigger(record)
    except (UnexpectedEventShape, MalformedEventPayload) as e:
        await ctx.notifier.alert(str(e))
        return []
    if trigger is None:
        return []
    return await run_trigger(ctx, trigger)


async def handle_event(ctx, event):
    """
    Process every record of an event concurrently and aggregate the outcomes.

    :return: A summary dict of the instance outcomes.
    :raises RotationFailed: If any record or instance pipeline failed, once all of them have finished.
    """
    records = split_records(event)
    results = await asyncio.gather(*(process_record(ctx, record) for record in records),
                                   return_exceptions=True)

    outcomes, failures = [], []
    for result in results:
        if isinstance(result, BaseException):
            failures.append(result)
        else:
            outcomes.extend(result)
    failures.extend(outcome.error for outcome in outcomes if not outcome.succeeded)

    summary = {'status': 'failed' if failures else 'success',
               'instances': [outcome.as_dict() for outcome in outcomes]}
    log(logging.INFO, f"Rotation finished: {json.dumps(summary)}")

    if failures:
        failed = [str(failure) for failure in failures]
        for failure in failures:
            if not isinstance(failure, RotationError) or failure.instance_id is None:
                await ctx.notifier.alert(f"Fatal error: {failure}")
        raise RotationFailed(f"Snapshot rotation failed: {'; '.join(failed)}", failures=failures)
    return summary


def lambda_handler(event, context):
    config = RotationConfig.from_env()
    get_logger(config.log_level)
    log(logging.INFO, f"Received event: {json.dumps(event, default=str)}")
    ctx = RotationContext.create(config)
    return asyncio.run(handle_event(ctx, event))


def main(argv=None):
    """
    Run a rotation from the command line: ``rds-dr-rotation [initial_sync]``.
    """
    argv = sys.argv[1:] if argv is None else argv
    if argv and argv != [INITIAL_SYNC_COMMAND]:
        logging.error(f"Unknown arguments {argv}. {USAGE}")
        sys.exit(2)
    event = {'command': INITIAL_SYNC_COMMAND} if argv else {'source': SCHEDULED_SOURCE}
    try:
        config = RotationConfig.from_env()
        get_logger(config.log_level)
        ctx = RotationContext.create(config)
        asyncio.run(handle_event(ctx, event))
    except RotationError as e:
        logging.error(f"{e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
