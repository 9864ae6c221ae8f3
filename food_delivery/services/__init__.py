"""
                        Services Module

External integrations with the hybrid architecture pattern.
Each service has Mock (development) and Real (production) implementations.

Services:
    - notifications: Twilio SMS for order status updates
"""
