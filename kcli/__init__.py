"""kcli: inspect topics, tail messages and measure consumer lag on Kafka."""

__version__ = "0.3.0"
