"""UNO domain services: deck, rules, scoring and the room state machine.

Nothing in this package knows about Flask, Socket.IO or the database; the
coordinator in ``pruno.services.rooms`` feeds it actions and takes care of
persistence and delivery.
"""
