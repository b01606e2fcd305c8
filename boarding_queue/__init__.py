"""Priority boarding/check-in queue with shared counters (MQTT-based).

The scheduling core orders one waiting line per flight by a time-dependent
priority score (fare class, assistance need, time waited, departure urgency)
and lets counters atomically claim the next passenger.

Around the core, MQTT pub/sub (via a broker like Mosquitto) coordinates:
- a Queue Manager service
- multiple Counter agents (auto-pilot)
- Passenger clients
- an optional Passenger Generator (Poisson arrivals) for load testing / simulation
"""
