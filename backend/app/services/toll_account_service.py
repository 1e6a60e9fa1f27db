"""
Toll account service

Account CRUD, credential validation and the sync state machine for one
company. Every query is scoped to the company the service was built for.
"""
import time
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import CompanyTollAccount, TollProvider, TollSyncLog, TollTransaction
from ..utils.crypto import CredentialDecryptionError
from ..utils.logger import get_logger, log_sync_event
from ..utils.validators import (
    sanitize_string,
    validate_account_number,
    validate_account_status,
    validate_credentials_payload,
    validate_positive_int,
)
from .exceptions import (
    CredentialError,
    NotFoundError,
    ProviderError,
    SyncInProgressError,
    TollSyncError,
    ValidationError,
)
from .toll.base import SYNC_LOOKBACK_DAYS, TollProviderService
from .toll.prepass import PrePassService
from .toll.registry import ProviderRegistry, get_provider_registry
from .toll.types import RouteRequest, SyncResult, TollCalculation, Transaction

logger = get_logger('toll_accounts')

DEFAULT_STALE_TIMEOUT = 300


class TollAccountService:
    """Operations on the toll accounts of a single company.

    Example:
        >>> service = TollAccountService(company_id=7)
        >>> account = service.create_account({'toll_provider_id': 1, 'account_number': 'A-1'})
        >>> result = service.sync_account(account.id)
    """

    def __init__(self, company_id: int, registry: Optional[ProviderRegistry] = None):
        self.company_id = company_id
        self.registry = registry or get_provider_registry()

    # ==================== Lookups ====================

    def _accounts(self):
        return CompanyTollAccount.query.filter(CompanyTollAccount.company_id == self.company_id)

    def get_account(self, account_id: int) -> CompanyTollAccount:
        account = self._accounts().filter(CompanyTollAccount.id == account_id).first()
        if account is None:
            raise NotFoundError('Toll account not found')
        return account

    @staticmethod
    def get_provider(provider_id: int) -> TollProvider:
        provider = db.session.get(TollProvider, provider_id)
        if provider is None:
            raise NotFoundError('Toll provider not found')
        return provider

    def list_accounts(
        self,
        limit: int = 50,
        offset: int = 0,
        provider_id: Optional[int] = None,
        status: Optional[str] = None
    ) -> Tuple[List[CompanyTollAccount], int]:
        """Paginated accounts of the company, newest first.

        Returns:
            (accounts, total matching rows)
        """
        query = self._accounts()
        if provider_id is not None:
            query = query.filter(CompanyTollAccount.toll_provider_id == provider_id)
        if status:
            query = query.filter(CompanyTollAccount.account_status == status)

        total = query.count()
        accounts = query.order_by(CompanyTollAccount.created_at.desc(), CompanyTollAccount.id.desc()) \
            .offset(offset).limit(limit).all()
        return accounts, total

    # ==================== Adapters ====================

    def adapter_config(self, provider: TollProvider, credentials: Dict[str, Any]) -> Dict[str, Any]:
        """Adapter config for ``provider``.

        Only the credential fields the adapter declares are taken from
        ``credentials``; endpoint and timeout come from the catalog and app
        config, and the rate limit is always the adapter's own.
        """
        fields = self.registry.adapter_class(provider.code).credential_fields()
        credentials = credentials or {}
        config = {key: credentials[key] for key in fields if key in credentials}
        config['base_url'] = provider.api_endpoint
        config['timeout'] = current_app.config.get('TOLL_REQUEST_TIMEOUT')
        return config

    def build_adapter(self, provider: TollProvider, credentials: Dict[str, Any]) -> TollProviderService:
        """Shared (cached) adapter for ``provider`` and the given credentials"""
        return self.registry.create(provider.code, self.adapter_config(provider, credentials))

    @contextmanager
    def one_off_adapter(self, provider: TollProvider, credentials: Dict[str, Any]):
        """Uncached adapter for credentials that may never be used again; closed on exit"""
        adapter = self.registry.create(provider.code, self.adapter_config(provider, credentials), cache=False)
        try:
            yield adapter
        finally:
            adapter.http.close()

    @staticmethod
    def _stored_credentials(account: CompanyTollAccount) -> Dict[str, Any]:
        try:
            return account.get_credentials()
        except CredentialDecryptionError:
            raise TollSyncError(
                'Stored credentials cannot be decrypted with the current key',
                error_code='CREDENTIALS_UNREADABLE'
            )

    # ==================== CRUD ====================

    def create_account(self, data: Dict[str, Any]) -> CompanyTollAccount:
        """Create an account, validating credentials with the provider first.

        A provider that cannot be reached during validation does not block
        creation; a provider that rejects the credentials does.
        """
        is_valid, error_msg, provider_id = validate_positive_int(data.get('toll_provider_id'), 'toll_provider_id')
        if not is_valid:
            raise ValidationError(error_msg, field='toll_provider_id')

        is_valid, error_msg, account_number = validate_account_number(data.get('account_number'))
        if not is_valid:
            raise ValidationError(error_msg, field='account_number')

        credentials = data.get('credentials')
        if credentials is not None:
            is_valid, error_msg = validate_credentials_payload(credentials)
            if not is_valid:
                raise ValidationError(error_msg, field='credentials')

        settings = data.get('account_settings') or {}
        if not isinstance(settings, dict):
            raise ValidationError('account_settings must be an object', field='account_settings')

        provider = self.get_provider(provider_id)
        if not provider.is_active:
            raise ValidationError('Toll provider is not active', field='toll_provider_id',
                                  error_code='PROVIDER_INACTIVE')

        if self._accounts().filter(
            CompanyTollAccount.toll_provider_id == provider_id,
            CompanyTollAccount.account_number == account_number
        ).first():
            raise ValidationError('Toll account already exists for this provider',
                                  field='account_number', error_code='DUPLICATE_ACCOUNT')

        if credentials:
            try:
                with self.one_off_adapter(provider, credentials) as adapter:
                    valid = adapter.validate_credentials()
            except ProviderError as e:
                logger.warning(f"Could not validate credentials for {provider.code}, creating anyway: {e.message}")
                valid = True
            if not valid:
                raise CredentialError('Invalid credentials for toll provider')

        account = CompanyTollAccount(
            company_id=self.company_id,
            toll_provider_id=provider_id,
            account_number=account_number,
            account_name=sanitize_string(data.get('account_name'), 128) or None,
            account_settings=settings,
            account_status='active',
            sync_status='pending',
        )
        account.set_credentials(credentials)

        db.session.add(account)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError('Toll account already exists for this provider',
                                  field='account_number', error_code='DUPLICATE_ACCOUNT')

        logger.info(f"Toll account created: id={account.id}, provider={provider.code}, company={self.company_id}")
        return account

    def update_account(self, account_id: int, data: Dict[str, Any]) -> Tuple[CompanyTollAccount, Optional[str]]:
        """Apply the editable fields of ``data``.

        Replacement credentials are checked with the provider, but a failed
        check only produces a warning; the update is still saved.

        Returns:
            (account, warning message or None)
        """
        account = self.get_account(account_id)
        warning = None

        if 'account_name' in data:
            account.account_name = sanitize_string(data.get('account_name'), 128) or None

        if 'account_settings' in data:
            settings = data.get('account_settings') or {}
            if not isinstance(settings, dict):
                raise ValidationError('account_settings must be an object', field='account_settings')
            account.account_settings = settings

        if 'account_status' in data:
            is_valid, error_msg, status = validate_account_status(data.get('account_status'))
            if not is_valid:
                raise ValidationError(error_msg, field='account_status')
            account.account_status = status

        if 'credentials' in data:
            credentials = data.get('credentials')
            if credentials:
                is_valid, error_msg = validate_credentials_payload(credentials)
                if not is_valid:
                    raise ValidationError(error_msg, field='credentials')
                warning = self._check_replacement_credentials(account.provider, credentials)
            account.set_credentials(credentials)

        db.session.commit()
        logger.info(f"Toll account updated: id={account.id}, company={self.company_id}")
        return account, warning

    def _check_replacement_credentials(self, provider: TollProvider, credentials: Dict[str, Any]) -> Optional[str]:
        try:
            with self.one_off_adapter(provider, credentials) as adapter:
                valid = adapter.validate_credentials()
        except ProviderError as e:
            logger.warning(f"Could not validate updated credentials for {provider.code}: {e.message}")
            return f'Credentials could not be verified: {e.message}'

        if not valid:
            logger.warning(f"Updated credentials rejected by {provider.code}, saving anyway")
            return 'Credentials could not be validated with the toll provider'
        return None

    def delete_account(self, account_id: int) -> None:
        account = self.get_account(account_id)
        db.session.delete(account)
        db.session.commit()
        logger.info(f"Toll account deleted: id={account_id}, company={self.company_id}")

    # ==================== Sync ====================

    def sync_account(self, account_id: int) -> SyncResult:
        """Run one sync attempt for an account.

        The account moves to 'syncing' through a conditional UPDATE, so two
        concurrent attempts cannot both start. Every attempt ends in
        'success' or 'error' and leaves one TollSyncLog row. Exceptions are
        recorded and then re-raised.

        Raises:
            NotFoundError: Unknown account for this company
            ValidationError: No stored credentials
            SyncInProgressError: Another attempt holds the account
        """
        account = self.get_account(account_id)
        return self._run_sync(
            account,
            'full_sync',
            lambda adapter: adapter.sync_account_data(account.account_number)
        )

    def sync_transactions(
        self,
        account_id: int,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> SyncResult:
        """Pull and store the account's transactions only.

        Same state machine and sync log as sync_account, with sync_type
        'transactions'. Defaults to the last SYNC_LOOKBACK_DAYS days.
        """
        end_date = end_date or datetime.utcnow()
        start_date = start_date or end_date - timedelta(days=SYNC_LOOKBACK_DAYS)
        if start_date > end_date:
            raise ValidationError('start_date must not be after end_date', field='start_date')

        account = self.get_account(account_id)

        def fetch(adapter):
            started = time.monotonic()
            transactions = adapter.get_transactions(account.account_number, start_date, end_date)
            return SyncResult(
                success=True,
                records_processed=len(transactions),
                sync_duration_ms=int((time.monotonic() - started) * 1000),
                transactions=transactions,
            )

        return self._run_sync(account, 'transactions', fetch)

    def _run_sync(
        self,
        account: CompanyTollAccount,
        sync_type: str,
        fetch: Callable[[TollProviderService], SyncResult]
    ) -> SyncResult:
        if not account.has_credentials:
            raise ValidationError('No credentials configured for this account', error_code='NO_CREDENTIALS')

        self._begin_sync(account)
        log_sync_event(account.id, 'started', {'provider': account.provider.code, 'type': sync_type})

        started = time.monotonic()
        try:
            credentials = self._stored_credentials(account)
            adapter = self.build_adapter(account.provider, credentials)
            result = fetch(adapter)
            result.records_created = self._store_transactions(account, result.transactions)
        except Exception as e:
            db.session.rollback()
            message = e.message if isinstance(e, TollSyncError) else (str(e) or e.__class__.__name__)
            self._finish_sync(account, None, message, int((time.monotonic() - started) * 1000), sync_type)
            log_sync_event(account.id, 'failed', {'error': message})
            raise

        if result.success:
            self._finish_sync(account, result, None, result.sync_duration_ms, sync_type)
            log_sync_event(account.id, 'completed', {
                'records': result.records_processed,
                'created': result.records_created,
            })
        else:
            message = '; '.join(result.errors)
            self._finish_sync(account, result, message, result.sync_duration_ms, sync_type)
            log_sync_event(account.id, 'partial_failure', {'errors': len(result.errors)})
        return result

    @staticmethod
    def _store_transactions(account: CompanyTollAccount, transactions: List[Transaction]) -> int:
        """Add transactions not stored yet for this account; returns how many were added.

        Rows are only added to the session, _finish_sync commits them together
        with the sync log.
        """
        if not transactions:
            return 0

        ids = {tx.transaction_id for tx in transactions}
        seen = {
            transaction_id for (transaction_id,) in db.session.query(TollTransaction.transaction_id)
            .filter(
                TollTransaction.company_toll_account_id == account.id,
                TollTransaction.transaction_id.in_(ids)
            )
        }

        created = 0
        for tx in transactions:
            if tx.transaction_id in seen:
                continue
            seen.add(tx.transaction_id)
            db.session.add(TollTransaction.from_transaction(account.id, tx))
            created += 1

        if created < len(transactions):
            logger.debug(f"Skipped {len(transactions) - created} known transactions for account {account.id}")
        return created

    def _begin_sync(self, account: CompanyTollAccount) -> None:
        now = datetime.utcnow()
        timeout = current_app.config.get('SYNC_STALE_TIMEOUT', DEFAULT_STALE_TIMEOUT)
        cutoff = now - timedelta(seconds=timeout)

        claimed = CompanyTollAccount.query.filter(
            CompanyTollAccount.id == account.id,
            CompanyTollAccount.company_id == self.company_id,
            db.or_(
                CompanyTollAccount.sync_status != 'syncing',
                CompanyTollAccount.sync_started_at.is_(None),
                CompanyTollAccount.sync_started_at < cutoff
            )
        ).update(
            {
                'sync_status': 'syncing',
                'sync_error_message': None,
                'sync_started_at': now,
            },
            synchronize_session=False
        )
        db.session.commit()

        if not claimed:
            raise SyncInProgressError('A sync is already in progress for this account')
        db.session.refresh(account)

    @staticmethod
    def _finish_sync(
        account: CompanyTollAccount,
        result: Optional[SyncResult],
        error_message: Optional[str],
        duration_ms: int,
        sync_type: str = 'full_sync'
    ) -> None:
        """Persist the SyncLog row and the final account state in one commit"""
        now = datetime.utcnow()
        failed = error_message is not None

        db.session.add(TollSyncLog(
            company_toll_account_id=account.id,
            sync_type=sync_type,
            sync_status='failed' if failed else 'completed',
            records_processed=result.records_processed if result else 0,
            records_created=result.records_created if result else 0,
            records_updated=result.records_updated if result else 0,
            error_message=error_message,
            sync_duration_ms=duration_ms,
            completed_at=now,
        ))

        account.sync_status = 'error' if failed else 'success'
        account.sync_error_message = error_message
        if result is not None:
            account.last_sync_at = now
        db.session.commit()

    def get_sync_logs(self, account_id: int, limit: int = 50, offset: int = 0) -> Tuple[List[TollSyncLog], int]:
        account = self.get_account(account_id)
        query = TollSyncLog.query.filter(TollSyncLog.company_toll_account_id == account.id)
        total = query.count()
        logs = query.order_by(TollSyncLog.completed_at.desc(), TollSyncLog.id.desc()) \
            .offset(offset).limit(limit).all()
        return logs, total

    # ==================== Transactions and account listings ====================

    def list_transactions(
        self,
        account_id: int,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[TollTransaction], int]:
        """Stored transactions of an account, newest first"""
        account = self.get_account(account_id)
        query = TollTransaction.query.filter(TollTransaction.company_toll_account_id == account.id)
        total = query.count()
        transactions = query.order_by(TollTransaction.transaction_date.desc(), TollTransaction.id.desc()) \
            .offset(offset).limit(limit).all()
        return transactions, total

    def get_account_resource(self, account_id: int, resource: str) -> List[Dict[str, Any]]:
        """Live listing (violations, transponders, vehicles) read from the provider"""
        account = self.get_account(account_id)
        if not account.has_credentials:
            raise ValidationError('No credentials configured for this account', error_code='NO_CREDENTIALS')
        adapter = self.build_adapter(account.provider, self._stored_credentials(account))
        return adapter.get_account_resource(account.account_number, resource)

    # ==================== Provider checks ====================

    def test_provider_connection(self, provider_id: int, credentials: Dict[str, Any]) -> bool:
        """Connectivity with ad-hoc credentials; False without I/O when required fields are missing"""
        provider = self.get_provider(provider_id)
        is_valid, error_msg = validate_credentials_payload(credentials)
        if not is_valid:
            raise ValidationError(error_msg, field='credentials')
        if not self.registry.validate_config(provider.code, credentials):
            logger.info(f"Connection test for {provider.code} skipped, required credential fields missing")
            return False
        with self.one_off_adapter(provider, credentials) as adapter:
            return adapter.test_connection()

    def validate_provider_credentials(self, provider_id: int, credentials: Dict[str, Any]) -> bool:
        provider = self.get_provider(provider_id)
        is_valid, error_msg = validate_credentials_payload(credentials)
        if not is_valid:
            raise ValidationError(error_msg, field='credentials')
        with self.one_off_adapter(provider, credentials) as adapter:
            return adapter.validate_credentials()

    def test_account_connections(self) -> Dict[str, bool]:
        """Connectivity of every known provider with the company's stored credentials.

        The oldest active account with credentials is used per provider;
        providers the company has no such account for report False.
        """
        configs = {}
        for account in self._usable_accounts().all():
            code = account.provider.code
            if code in configs or code not in self.registry.list_providers():
                continue
            configs[code] = self.adapter_config(account.provider, self._stored_credentials(account))
        return self.registry.test_all_connections(configs)

    # ==================== Routing ====================

    def _usable_accounts(self, provider_id: Optional[int] = None):
        """Active accounts with credentials whose provider is active, oldest first"""
        query = self._accounts().join(TollProvider).filter(
            CompanyTollAccount.account_status == 'active',
            CompanyTollAccount.encrypted_credentials.isnot(None),
            TollProvider.is_active.is_(True)
        )
        if provider_id is not None:
            query = query.filter(CompanyTollAccount.toll_provider_id == provider_id)
        return query.order_by(CompanyTollAccount.id)

    def calculate_route_tolls(
        self,
        route_data: Dict[str, Any],
        provider_id: Optional[int] = None
    ) -> Tuple[TollCalculation, TollProvider]:
        """Quote tolls for a route with one of the company's active accounts.

        Without ``provider_id`` the registry picks among the providers the
        company has usable accounts for.
        """
        request = RouteRequest.from_dict(route_data)
        accounts = self._usable_accounts(provider_id).all()

        if not accounts:
            raise NotFoundError('No active toll account with credentials for this route',
                                error_code='NO_ACTIVE_ACCOUNT')

        by_code = {}
        for account in accounts:
            by_code.setdefault(account.provider.code, account)

        code = self.registry.get_best_provider_for_route(
            request.origin.state, request.destination.state, list(by_code)
        )
        account = by_code[code]
        adapter = self.build_adapter(account.provider, self._stored_credentials(account))
        return adapter.calculate_tolls(request), account.provider

    def get_weigh_stations(self, route_data: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Weigh stations and bypass status between two points, from the company's PrePass account.

        Raises:
            ValidationError: Origin or destination without coordinates
            NotFoundError: No usable PrePass account
        """
        request = RouteRequest.from_dict(route_data)
        for name, location in (('origin', request.origin), ('destination', request.destination)):
            if not location.has_coordinates:
                raise ValidationError(f'{name} needs latitude and longitude', field=name)

        account = self._usable_accounts().filter(TollProvider.code == PrePassService.PROVIDER_CODE).first()
        if account is None:
            raise NotFoundError('No active PrePass account with credentials', error_code='NO_ACTIVE_ACCOUNT')

        adapter = self.build_adapter(account.provider, self._stored_credentials(account))
        return adapter.get_weigh_stations_on_route(request.origin, request.destination)

    # ==================== Maintenance ====================

    @staticmethod
    def cleanup_stale_syncs(timeout_seconds: Optional[int] = None) -> int:
        """Move accounts stuck in 'syncing' to 'error'.

        Args:
            timeout_seconds: Age after which a sync is stale, defaults to SYNC_STALE_TIMEOUT

        Returns:
            Number of accounts cleaned up
        """
        if timeout_seconds is None:
            timeout_seconds = current_app.config.get('SYNC_STALE_TIMEOUT', DEFAULT_STALE_TIMEOUT)

        try:
            cutoff_time = datetime.utcnow() - timedelta(seconds=timeout_seconds)

            stale_accounts = CompanyTollAccount.query.filter(
                CompanyTollAccount.sync_status == 'syncing',
                db.or_(
                    CompanyTollAccount.sync_started_at.is_(None),
                    CompanyTollAccount.sync_started_at < cutoff_time
                )
            ).all()

            for account in stale_accounts:
                logger.warning(
                    f"[StaleSyncCleanup] Account {account.account_number} (id={account.id}) "
                    f"stuck in syncing since {account.sync_started_at}, marking as error"
                )
                account.sync_status = 'error'
                account.sync_error_message = 'Sync terminated abnormally (timed out), please retry'

            if stale_accounts:
                db.session.commit()
                logger.info(f"[StaleSyncCleanup] Cleaned up {len(stale_accounts)} stale syncs")

            return len(stale_accounts)

        except SQLAlchemyError as e:
            logger.error(f"[StaleSyncCleanup] Cleanup failed: {e}")
            db.session.rollback()
            return 0
