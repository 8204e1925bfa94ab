"""Main Lambda handler for Social2RSS."""

import json
import os
from datetime import UTC, datetime
from functools import partial
from typing import Any

import boto3

from .circuit_breaker import CircuitBreaker
from .codec import FeedCodec
from .config import Config
from .discovery import ProfileDiscoverer
from .errors import FeedStorageError
from .logging_config import create_execution_logger, setup_structured_logging
from .normalize import ItemNormalizer
from .retry import RetryPolicy
from .scheduler import BatchScheduler
from .storage import create_feed_store
from .sync import FeedSynchronizer

# Setup structured logging
setup_structured_logging(os.getenv("LOG_LEVEL", "INFO"))

METRICS_NAMESPACE = "Social2RSS"


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    Main Lambda handler that runs one feed synchronization cycle.

    Args:
        event: Lambda event data. An optional "profiles" list of profile ids
            restricts the run to those profiles.
        context: Lambda context object

    Returns:
        Response dictionary with status and metrics
    """
    execution_id = f"lambda_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S_%f')}"
    main_logger = create_execution_logger("main", execution_id)

    main_logger.log_execution_start(
        lambda_request_id=getattr(context, "aws_request_id", "unknown"),
        lambda_function_name=getattr(context, "function_name", "unknown"),
    )

    metrics = {
        "profiles_total": 0,
        "profiles_with_items": 0,
        "profiles_failed": 0,
        "profiles_skipped": 0,
        "items_found": 0,
        "items_existing": 0,
        "items_in_feed": 0,
        "circuit_broken": False,
        "feed_written": False,
        "errors": [],
    }

    try:
        config = Config()
        main_logger.info("Configuration initialized")

        profiles = config.get_profiles()
        selected_ids = (event or {}).get("profiles")
        if isinstance(selected_ids, str):
            selected_ids = [selected_ids]
        if selected_ids:
            selected = set(selected_ids)
            profiles = [p for p in profiles if p.id in selected]
        metrics["profiles_total"] = len(profiles)
        main_logger.info(
            f"Processing {len(profiles)} profiles", profile_count=len(profiles)
        )

        sync_config = config.get_sync_config()
        bedrock_config = config.get_bedrock_config()
        channel_config = config.get_channel_config()

        discoverer = ProfileDiscoverer(
            bedrock_config,
            discovery_window_hours=sync_config.discovery_window_hours,
            content_language=sync_config.content_language,
            execution_id=execution_id,
        )
        # A fresh breaker per invocation: each scheduled run starts closed
        retry_policy = RetryPolicy(
            breaker=CircuitBreaker(sync_config.circuit_breaker_threshold),
            normalizer=ItemNormalizer(account_label=sync_config.account_label),
            primary_target=bedrock_config.model_id,
            fallback_target=bedrock_config.fallback_model_id,
            max_retries=sync_config.max_retries,
            backoff_seconds=sync_config.retry_backoff,
            execution_id=execution_id,
        )
        scheduler = BatchScheduler(
            partial(retry_policy.attempt_fetch, fetch_fn=discoverer.fetch_items),
            chunk_size=sync_config.chunk_size,
            inter_chunk_delay=sync_config.inter_chunk_delay,
            execution_id=execution_id,
        )
        synchronizer = FeedSynchronizer(
            store=create_feed_store(config.get_storage_config(), execution_id),
            scheduler=scheduler,
            codec=FeedCodec(channel_config, execution_id=execution_id),
            feed_title=channel_config.title,
            max_items=sync_config.max_items,
            execution_id=execution_id,
        )

        result = synchronizer.run(profiles)

        metrics["profiles_with_items"] = result.cycle.profiles_with_items
        metrics["profiles_failed"] = result.cycle.profiles_failed
        metrics["profiles_skipped"] = result.cycle.profiles_skipped
        metrics["items_found"] = len(result.new_items)
        metrics["items_existing"] = len(result.existing_items)
        metrics["items_in_feed"] = len(result.feed.items)
        metrics["circuit_broken"] = result.cycle.circuit_broken
        metrics["feed_written"] = result.written
        if result.cycle.circuit_broken:
            metrics["errors"].append(
                "Circuit breaker tripped, remaining profiles were skipped"
            )

        main_logger.log_metrics(metrics)
        send_cloudwatch_metrics(metrics, config.aws_region, execution_id)
        main_logger.log_execution_end(success=True, metrics=metrics)

        return {
            "statusCode": 200,
            "body": json.dumps(
                {
                    "message": "Social2RSS sync completed",
                    "execution_id": execution_id,
                    "metrics": metrics,
                }
            ),
        }

    except Exception as e:
        if isinstance(e, FeedStorageError):
            error_msg = f"Feed storage failure, previous feed left unchanged: {e}"
        else:
            error_msg = f"Critical error in Lambda handler: {str(e)}"
        main_logger.error(error_msg, error=str(e))
        metrics["errors"].append(error_msg)

        send_cloudwatch_metrics(
            metrics,
            config.aws_region if "config" in locals() else "us-east-1",
            execution_id,
        )

        main_logger.log_execution_end(success=False, metrics=metrics, error=error_msg)

        return {
            "statusCode": 500,
            "body": json.dumps(
                {
                    "message": "Social2RSS sync failed",
                    "execution_id": execution_id,
                    "error": error_msg,
                    "metrics": metrics,
                }
            ),
        }


def send_cloudwatch_metrics(
    metrics: dict[str, Any], aws_region: str, execution_id: str
) -> None:
    """
    Send custom metrics to CloudWatch.

    Args:
        metrics: Dictionary containing execution metrics
        aws_region: AWS region for CloudWatch client
        execution_id: Execution ID for logging context
    """
    metrics_logger = create_execution_logger("cloudwatch_metrics", execution_id)

    try:
        metrics_logger.info("Sending metrics to CloudWatch", metrics=metrics)
        cloudwatch = boto3.client("cloudwatch", region_name=aws_region)

        total_errors = len(metrics["errors"])
        execution_success = total_errors == 0
        dimensions = [{"Name": "ExecutionId", "Value": execution_id}]

        counters = [
            ("ProfilesProcessed", "profiles_total"),
            ("ProfilesWithItems", "profiles_with_items"),
            ("ProfilesFailed", "profiles_failed"),
            ("ProfilesSkipped", "profiles_skipped"),
            ("ItemsFound", "items_found"),
            ("ItemsInFeed", "items_in_feed"),
        ]
        metric_data = [
            {
                "MetricName": name,
                "Value": metrics[key],
                "Unit": "Count",
                "Dimensions": dimensions,
            }
            for name, key in counters
        ]
        metric_data.extend(
            [
                {
                    "MetricName": "Errors",
                    "Value": total_errors,
                    "Unit": "Count",
                    "Dimensions": dimensions,
                },
                {
                    "MetricName": "CircuitBreakerTripped",
                    "Value": 1 if metrics["circuit_broken"] else 0,
                    "Unit": "Count",
                    "Dimensions": dimensions,
                },
                {
                    "MetricName": "ExecutionSuccess",
                    "Value": 1 if execution_success else 0,
                    "Unit": "Count",
                    "Dimensions": [
                        {
                            "Name": "Status",
                            "Value": "Success" if execution_success else "Failure",
                        }
                    ],
                },
                {
                    "MetricName": "ProfileYield",
                    "Value": (
                        metrics["profiles_with_items"] / max(metrics["profiles_total"], 1)
                    )
                    * 100,
                    "Unit": "Percent",
                    "Dimensions": dimensions,
                },
            ]
        )

        # CloudWatch accepts at most 20 metrics per call
        batch_size = 20
        for i in range(0, len(metric_data), batch_size):
            batch = metric_data[i : i + batch_size]
            cloudwatch.put_metric_data(Namespace=METRICS_NAMESPACE, MetricData=batch)
            metrics_logger.debug(f"Sent batch of {len(batch)} metrics to CloudWatch")

        metrics_logger.info(
            "Successfully sent metrics to CloudWatch",
            metrics_sent=len(metric_data),
            namespace=METRICS_NAMESPACE,
            execution_success=execution_success,
        )

    except Exception as e:
        metrics_logger.error(f"Failed to send CloudWatch metrics: {e}", error=str(e))
        # Don't raise - metrics failure shouldn't break the main flow
