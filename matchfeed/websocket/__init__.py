"""WebSocket fan-out of match events to subscribed viewers.

Each browser tab holds one Connection. Viewers subscribe to the matches
they are watching; commentary is pushed only to those subscribers, while
new-match notifications go to every open connection.

Architecture:
    REST insert / ReplayEngine release
    -> ConnectionManager.broadcast_to_match() / broadcast_to_all()
    -> SubscriptionRegistry lookup -> Connection.send_text()

    HeartbeatMonitor (every 30s) pings every connection and terminates
    the ones that stayed silent for a whole interval.
"""
