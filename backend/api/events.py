# events.py - Kafka event stream for user and catalog activity
import json
import time
import logging

logger = logging.getLogger(__name__)

EVENTS_TOPIC = "nextwatch-events"

producer = None


def init_producer(bootstrap):
    """Create the Kafka producer when bootstrap servers are configured."""
    global producer
    if not bootstrap:
        producer = None
        return None
    try:
        from kafka import KafkaProducer
        producer = KafkaProducer(
            bootstrap_servers=[h.strip() for h in bootstrap.split(',')],
            value_serializer=lambda v: json.dumps(v).encode('utf-8')
        )
        logger.info('Kafka producer initialized for %s', bootstrap)
    except Exception as e:
        logger.error('Failed to initialize Kafka producer: %s', e)
        producer = None
    return producer


def publish_event(event_type, payload):
    """Publish an event to Kafka, or log it if producer is not initialized."""
    event = {
        'type': event_type,
        'payload': payload,
        'timestamp': time.time()
    }
    if producer:
        try:
            producer.send(EVENTS_TOPIC, event)
            producer.flush()
            logger.info("Kafka event sent: %s", event_type)
        except Exception as e:
            logger.error("Kafka send error for event '%s': %s", event_type, e)
    else:
        logger.info("Kafka producer not initialized. Event: %s", event)
    return event
