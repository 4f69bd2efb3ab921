import asyncio
import functools

import boto3


def get_rds_client(region, config):
    """
    Build an RDS client for the given region. ``None`` falls back to the boto3 default region chain.
    """
    return boto3.client('rds', region_name=region, config=config)


async def run_blocking(func, *args, **kwargs):
    """
    Run a blocking boto3 call off the event loop and wait for its result.

    Every AWS call in the rotation goes through here, so these awaits are the
    only points where one pipeline yields to another.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


def error_code(err):
    """
    AWS error code of a ClientError, or the exception class name for transport errors.
    """
    response = getattr(err, 'response', None) or {}
    return response.get('Error', {}).get('Code', type(err).__name__)


def error_text(err):
    response = getattr(err, 'response', None) or {}
    return response.get('Error', {}).get('Message', str(err))
