# Backlog sync services:
#   metadata_codec.py - Link Record embedding in card descriptions
#   list_resolver.py  - list name resolution and role classification
#   repository.py     - board capability interface
#   fanout.py         - concurrent fan-out with independent failures
#   trello_client.py  - httpx implementation of the board capability
#   sync_engine.py    - proxy card state machine
#   dispatcher.py     - webhook action routing
#   reconciler.py     - full backlog rebuild
