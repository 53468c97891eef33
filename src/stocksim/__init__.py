"""Monte-Carlo simulation of a stochastic-volatility stock model and SDE scheme accuracy studies."""

__version__ = "0.1.0"
