"""
Dependency Injection Container for RelayChat.

Every piece of core state (the registry, the presence service, the handshake
gate, the shutdown coordinator) is an instance owned by the container, never
a module-level global.

USAGE:
    # In application startup (lifespan.py):
    container = ApplicationContainer()
    await container.initialize()
    app.state.container = container

    # In request handlers:
    def get_container(request: Request) -> ApplicationContainer:
        return request.app.state.container

    # In tests, with in-memory stores:
    container = ApplicationContainer(config, session_store=fake_store, user_store=fake_users)
"""

from typing import TYPE_CHECKING

from .app.lifespan_shutdown import ShutdownCoordinator
from .auth.session_store import SessionStore, SessionStoreProtocol
from .auth.tokens import TokenValidator
from .auth.user_store import UserStore, UserStoreProtocol
from .config import get_config
from .database import DatabaseManager
from .monitoring.exception_tracker import ExceptionTracker
from .realtime.connection_registry import ConnectionRegistry, PresenceService
from .realtime.handshake import HandshakeGate
from .realtime.message_broadcaster import MessageBroadcaster
from .realtime.message_validator import MessageValidator
from .structured_logging.enhanced_logging_config import get_logger

if TYPE_CHECKING:
    from .config.models import AppConfig

logger = get_logger(__name__)


class ApplicationContainer:
    """
    Owns the services of one RelayChat application.

    Construction wires the object graph and performs no I/O; initialize()
    prepares the database tables.
    """

    def __init__(
        self,
        config: "AppConfig | None" = None,
        session_store: SessionStoreProtocol | None = None,
        user_store: UserStoreProtocol | None = None,
    ) -> None:
        self.config: AppConfig = config or get_config()
        realtime = self.config.realtime
        security = self.config.security

        # Core infrastructure
        self.database_manager = DatabaseManager(self.config.database)
        self.exception_tracker = ExceptionTracker(max_records=self.config.telemetry.max_records)

        # Stores
        self._uses_database = session_store is None or user_store is None
        self.session_store: SessionStoreProtocol = session_store or SessionStore(self.database_manager)
        self.user_store: UserStoreProtocol = user_store or UserStore(self.database_manager)

        # Authentication
        self.token_validator = TokenValidator(
            self.session_store,
            security.jwt_secret,
            algorithm=security.jwt_algorithm,
        )

        # Real-time communication
        self.registry = ConnectionRegistry()
        self.broadcaster = MessageBroadcaster(self.registry, self.exception_tracker)
        self.presence_service = PresenceService(
            self.registry,
            self.broadcaster,
            rebroadcast_delay=realtime.presence_rebroadcast_delay,
        )
        self.message_validator = MessageValidator(
            max_frame_bytes=realtime.max_frame_bytes,
            max_message_length=realtime.max_message_length,
        )
        self.handshake_gate = HandshakeGate(security.allowed_origins, self.token_validator)

        # Lifecycle
        self.shutdown_coordinator: ShutdownCoordinator = ShutdownCoordinator(
            handshake_gate=self.handshake_gate,
            registry=self.registry,
            presence_service=self.presence_service,
            exception_tracker=self.exception_tracker,
            database_manager=self.database_manager,
            close_timeout=realtime.close_timeout,
            telemetry_flush_timeout=self.config.telemetry.flush_timeout,
        )

        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Prepare external resources.

        Table creation failures are logged, not raised: the server still starts
        and handshakes report store-unavailable until the database is reachable.
        """
        if self._initialized:
            return

        if self.config.security.jwt_secret is None:
            logger.error("RELAYCHAT_JWT_SECRET is not set; every handshake will be rejected as server-misconfigured")

        if self._uses_database:
            try:
                await self.database_manager.init_db()
            except Exception as e:
                logger.error(
                    "Database initialization failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                self.exception_tracker.track_exception(e, context={"operation": "init_db"}, severity="critical")

        self._initialized = True
        logger.info("Application container initialized", uses_database=self._uses_database)
