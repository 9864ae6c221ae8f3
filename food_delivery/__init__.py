"""
                Food Delivery Order Service

Order placement and order lifecycle backend for a food-delivery
platform: cart pricing, atomic order persistence, and the order
status state machine shared by customers and operators.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
