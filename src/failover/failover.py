import threading
import logging

logger = logging.getLogger("Failover")

class ServerFailover:
    """
    Tracks which time server is in use and moves to a backup after failures
    Either cycles through the list or holds at the last server
    """
    def __init__(self, servers, cycle=False):
        """
        Initialize the failover handler

        Args:
            servers (sequence): ServerEndpoint objects, at least one
            cycle (bool): wrap back to the first server after the last one
        """
        self.servers = tuple(servers)
        if not self.servers:
            raise ValueError("ServerFailover needs at least one server")
        self.cycle = cycle
        self.current_index = 0
        self.failover_lock = threading.Lock()

        logger.info(f"Failover handler initialized with {len(self.servers)} servers")

    @property
    def current_server(self):
        """
        Get the server the next query should go to

        Returns:
            ServerEndpoint: Current server
        """
        return self.servers[self.current_index]

    def advance(self):
        """
        Move to the next server after a failed query

        Returns:
            ServerEndpoint: The server now in use
        """
        with self.failover_lock:
            previous_index = self.current_index
            if self.cycle and len(self.servers) > 1:
                self.current_index = (self.current_index + 1) % len(self.servers)
            elif self.current_index + 1 < len(self.servers):
                self.current_index += 1

            if self.current_index != previous_index:
                logger.info(f"Shifting to backup server {self.current_server}")
            else:
                logger.debug(f"No backup server left, staying on {self.current_server}")
            return self.current_server
