"""
Kafka Ingestion/Query Listener

Consumes raw string messages from a Kafka topic. Each message is either an
article URL to ingest or a free-text query to answer, decided by the shared
request classifier (or forced by the consumer mode).

Messages are handled one at a time. Failures are retried with exponential
backoff; a message that keeps failing is routed to a dead-letter topic when
one is configured. Offsets are committed once a message has been handled.
"""

import time
import logging
from typing import Any, Callable, List, Optional, Tuple

from kafka import KafkaConsumer, KafkaProducer

from ..config import Config, KAFKA_MODES
from ..errors import ValidationError
from ..main_pipeline import NewsAgent
from ..query.classifier import SearchRequest, UrlIngestRequest, classify_request, extract_url

logger = logging.getLogger(__name__)


def build_client_options(config: Config) -> dict:
    """Connection options shared by the consumer and the dead-letter producer."""
    options = {'bootstrap_servers': [b.strip() for b in config.kafka_broker.split(',') if b.strip()]}
    if config.kafka_username:
        options.update({
            'security_protocol': 'SASL_SSL',
            'sasl_mechanism': 'PLAIN',
            'sasl_plain_username': config.kafka_username,
            'sasl_plain_password': config.kafka_password,
        })
    return options


def build_consumer(config: Config) -> KafkaConsumer:
    """Create a KafkaConsumer subscribed to the configured topic."""
    group_id = f"{config.kafka_group_id_prefix}{int(time.time() * 1000)}"
    consumer = KafkaConsumer(
        config.kafka_topic_name,
        group_id=group_id,
        client_id='news-agent-consumer',
        auto_offset_reset='latest',
        enable_auto_commit=False,
        **build_client_options(config)
    )
    logger.info(f"Subscribed to topic: {config.kafka_topic_name} (group {group_id})")
    return consumer


def build_dead_letter_producer(config: Config) -> Optional[KafkaProducer]:
    """Create a producer for the dead-letter topic, or None if none is configured."""
    if not config.kafka_dead_letter_topic:
        return None
    return KafkaProducer(client_id='news-agent-dlq', **build_client_options(config))


class ArticleConsumer:
    """
    Drives the agent from a Kafka topic.

    Modes:
        auto   - classify each message (URL -> ingest, otherwise query)
        ingest - every message is a URL to ingest
        query  - every message is a free-text query
    """

    def __init__(
        self,
        agent: NewsAgent,
        consumer: Any,
        mode: str = 'auto',
        max_attempts: int = 3,
        retry_backoff: float = 1.0,
        dead_letter_producer: Optional[Any] = None,
        dead_letter_topic: str = '',
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Args:
            agent: Pipeline used to ingest URLs and answer queries
            consumer: KafkaConsumer (or any iterable of records with .value)
            mode: One of 'auto', 'ingest', 'query'
            max_attempts: Attempts per message before dead-lettering
            retry_backoff: Base delay in seconds, doubled after each failed attempt
            dead_letter_producer: KafkaProducer used for failed messages
            dead_letter_topic: Topic for failed messages
            sleep: Sleep function (injectable for tests)
        """
        if mode not in KAFKA_MODES:
            raise ValueError(f"mode must be one of {KAFKA_MODES}, got '{mode}'")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.agent = agent
        self.consumer = consumer
        self.mode = mode
        self.max_attempts = max_attempts
        self.retry_backoff = retry_backoff
        self.dead_letter_producer = dead_letter_producer
        self.dead_letter_topic = dead_letter_topic
        self._sleep = sleep
        self._running = False

        self.stats = {'processed': 0, 'failed': 0, 'dead_lettered': 0, 'skipped': 0}

    @classmethod
    def from_config(cls, agent: NewsAgent, config: Optional[Config] = None, mode: Optional[str] = None):
        """Build a consumer (and dead-letter producer) from configuration."""
        config = config or agent.config
        return cls(
            agent=agent,
            consumer=build_consumer(config),
            mode=mode or config.kafka_mode,
            max_attempts=config.kafka_max_attempts,
            retry_backoff=config.kafka_retry_backoff,
            dead_letter_producer=build_dead_letter_producer(config),
            dead_letter_topic=config.kafka_dead_letter_topic
        )

    def _decode(self, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, bytes):
            value = value.decode('utf-8', errors='replace')
        value = str(value).strip()
        return value or None

    def _route(self, payload: str):
        if self.mode == 'ingest':
            url = extract_url(payload)
            if url is None:
                raise ValidationError(f"Expected an article URL, got {payload[:200]!r}")
            return UrlIngestRequest(url=url, query=payload)
        if self.mode == 'query':
            return SearchRequest(query=payload)
        return classify_request(payload)

    def handle_payload(self, payload: str) -> None:
        """
        Run one message through the pipeline (single attempt).

        Raises:
            NewsAgentError: If the stage fails
        """
        request = self._route(payload)

        if isinstance(request, UrlIngestRequest):
            article = self.agent.ingest_article(request.url)
            logger.info(f"Ingested {request.url}: {article.title}")
        else:
            result = self.agent.ask(request.query)
            logger.info(f"Generated response: {result.answer}")
            logger.info(
                "Sources: %s",
                [{'title': a.title, 'url': a.url, 'date': a.date} for a in result.sources]
            )

    def process_message(self, message: Any) -> bool:
        """
        Process one Kafka record with retries.

        Returns:
            True if handled successfully, False if skipped or failed
        """
        payload = self._decode(getattr(message, 'value', None))
        partition = getattr(message, 'partition', None)

        if not payload:
            logger.warning(f"Message without a valid payload: {message!r}")
            self.stats['skipped'] += 1
            return False

        logger.info(f"Processing message [Partition {partition}]: {payload}")

        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                self.handle_payload(payload)
                self.stats['processed'] += 1
                return True
            except ValidationError as e:
                last_error = e
                break
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Attempt {attempt}/{self.max_attempts} failed for {payload!r}: {e}"
                )
                if attempt < self.max_attempts:
                    self._sleep(self.retry_backoff * (2 ** (attempt - 1)))

        self.stats['failed'] += 1
        logger.error(f"Failed to process message {payload!r}: {last_error}")
        self._dead_letter(message, last_error)
        return False

    def _dead_letter(self, message: Any, error: Optional[Exception]) -> None:
        if self.dead_letter_producer is None or not self.dead_letter_topic:
            return

        # Republish the record value exactly as consumed
        value = message.value
        if isinstance(value, str):
            value = value.encode('utf-8')

        headers: List[Tuple[str, bytes]] = [
            ('error_type', type(error).__name__.encode('utf-8')),
            ('error_message', str(error).encode('utf-8')[:1000]),
            ('source_topic', str(getattr(message, 'topic', '')).encode('utf-8')),
            ('source_partition', str(getattr(message, 'partition', '')).encode('utf-8')),
            ('source_offset', str(getattr(message, 'offset', '')).encode('utf-8')),
        ]
        try:
            future = self.dead_letter_producer.send(
                self.dead_letter_topic,
                value=value,
                headers=headers
            )
            future.get(timeout=10)
            self.stats['dead_lettered'] += 1
            logger.info(f"Routed message to dead-letter topic {self.dead_letter_topic}")
        except Exception as e:
            logger.error(f"Failed to publish to dead-letter topic {self.dead_letter_topic}: {e}")

    def _commit(self) -> None:
        commit = getattr(self.consumer, 'commit', None)
        if commit is None:
            return
        try:
            commit()
        except Exception as e:
            logger.error(f"Offset commit failed: {e}")

    def run(self) -> None:
        """Consume messages until stop() is called or the consumer is exhausted."""
        self._running = True
        logger.info(f"Kafka consumer running in '{self.mode}' mode")
        try:
            for message in self.consumer:
                self.process_message(message)
                self._commit()
                if not self._running:
                    break
        finally:
            self.close()

    def stop(self) -> None:
        """Ask the run loop to exit after the current message."""
        logger.info("Shutting down consumer...")
        self._running = False

    def close(self) -> None:
        """Close the Kafka clients."""
        self._running = False
        close = getattr(self.consumer, 'close', None)
        if close is not None:
            close()
        if self.dead_letter_producer is not None:
            self.dead_letter_producer.flush()
            self.dead_letter_producer.close()
            self.dead_letter_producer = None
