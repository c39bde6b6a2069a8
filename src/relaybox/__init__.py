"""


Relay Routes

- Endpoint: abstraction of a bi-directional data channel with blocking read/write
  and a stable id. UDP (message) and TCP (stream) endpoints are provided.
- EndpointAddress: parsed form of a udp:// or tcp:// URI. Empty host means listener.
- ConnectionFactory: turns an ordered list of candidate addresses into a ready endpoint,
  connecting out for callers and accepting on a listener otherwise.
- ConnectionSlot: keeps a listening socket alive between reconnects, so a peer can
  come back to the same port.
- forward(): one direction of the relay. Reads a message from one endpoint and writes
  it to the other until cancelled.
- Router: the duplex orchestrator. Connects destination then source, runs forward()
  in one or both directions, attaches the endpoints to the stats writer, and
  reconnects after failures no more than once per second.
- StatsWriter: samples endpoint counters on a background thread and appends them
  to a CSV file.


## Threading

The source->destination loop runs on the thread that called Router.run(). With
bidirectional routing the destination->source loop runs on one extra thread,
and the caller waits for the forward loop before it waits for the backward loop.

Cancellation is cooperative. The CancellationToken is checked between messages
and during the reconnect backoff, never inside a blocking read. A read blocked on a
quiet peer only returns when the endpoint is closed, which is what Router.shutdown()
does. When one direction fails it closes the route attempt so the other direction
is released too.

The stats writer has its own sampling thread, started when the writer is created
and stopped when the route attempt ends.
"""
