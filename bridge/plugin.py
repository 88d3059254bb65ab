import logging
from typing import Callable, Dict, List, NamedTuple

from bridge.call import PluginCall
from bridge.codec import apply_fields, decode, encode
from bridge.database import TRUE_PREDICATE, CloudDatabase, Query
from bridge.errors import ExternalOperationFailed, InvalidArgument, Unimplemented, UnknownFailure
from bridge.fields import RecordID

logger = logging.getLogger(__name__)


class PluginMethod(NamedTuple):
    name: str
    return_type: str = "promise"


class RecordStorePlugin:
    """Create, fetch, update and delete store records for the host bridge.

    Each handler validates the call options, issues its store request(s)
    and settles the call on the host loop. Nothing is cached between
    calls.
    """

    identifier = "RecordStorePlugin"
    js_name = "RecordStorePlugin"
    plugin_methods: List[PluginMethod] = [
        PluginMethod("createRecord"),
        PluginMethod("fetchRecords"),
        PluginMethod("updateRecord"),
        PluginMethod("deleteRecord"),
    ]

    def __init__(self, database: CloudDatabase):
        self.database = database
        self._handlers: Dict[str, Callable[[PluginCall], None]] = {
            "createRecord": self.create_record,
            "fetchRecords": self.fetch_records,
            "updateRecord": self.update_record,
            "deleteRecord": self.delete_record,
        }

    def close(self):
        self.database.close()

    def invoke(self, call: PluginCall):
        handler = self._handlers.get(call.method_name)
        if handler is None:
            call.reject(Unimplemented(f"{self.js_name}.{call.method_name} is not implemented"))
            return
        logger.debug("Invoking %s.%s", self.js_name, call.method_name)
        handler(call)

    def create_record(self, call: PluginCall):
        record_type = call.get_string("recordType")
        if not record_type:
            call.reject(InvalidArgument("Must provide recordType"))
            return
        fields = call.get_object("fields")
        if fields is None:
            call.reject(InvalidArgument("Must provide fields"))
            return

        try:
            record = encode(record_type, fields)
        except ValueError as exc:
            call.reject(InvalidArgument(str(exc)))
            return

        def saved(saved_record, error):
            def finish():
                if error is not None:
                    call.reject(ExternalOperationFailed(f"Error saving record: {error.description}"))
                    return
                if saved_record is not None:
                    call.resolve({"recordName": saved_record.record_name})
                else:
                    call.reject(UnknownFailure("Failed to save record for unknown reasons"))

            call.dispatch(finish)

        self.database.save(record, saved)

    def fetch_records(self, call: PluginCall):
        record_type = call.get_string("recordType")
        if not record_type:
            call.reject(InvalidArgument("Must provide recordType"))
            return

        predicate = call.get_string("predicate")
        arguments = []
        if predicate is None:
            predicate = TRUE_PREDICATE
        elif "==" in predicate:
            # Any predicate containing "==" takes the reference as its operand,
            # whether or not it compares a reference field.
            reference_id = call.get_string("referenceId")
            if reference_id is not None:
                arguments.append(RecordID(reference_id))

        query = Query(record_type, predicate, arguments)

        def fetched(records, error):
            def finish():
                if error is not None:
                    call.reject(ExternalOperationFailed(f"Error fetching records: {error.description}"))
                    return
                if records is None:
                    call.resolve({"records": []})
                    return
                call.resolve({"records": [decode(record) for record in records]})

            call.dispatch(finish)

        self.database.perform(query, fetched)

    def update_record(self, call: PluginCall):
        record_name = call.get_string("recordId")
        if not record_name:
            call.reject(InvalidArgument("Must provide recordId"))
            return
        fields = call.get_object("fields")
        if fields is None:
            call.reject(InvalidArgument("Must provide fields"))
            return

        def saved(saved_record, error):
            def finish():
                if error is not None:
                    call.reject(ExternalOperationFailed(f"Error updating record: {error.description}"))
                    return
                if saved_record is not None:
                    call.resolve({"recordName": saved_record.record_name})
                else:
                    call.reject(UnknownFailure("Failed to update record for unknown reasons"))

            call.dispatch(finish)

        def fetched(record, error):
            def merge():
                if error is not None:
                    call.reject(ExternalOperationFailed(f"Error fetching record: {error.description}"))
                    return
                if record is None:
                    call.reject(ExternalOperationFailed("Record not found"))
                    return
                # Not atomic: a write landing between fetch and save is overwritten.
                try:
                    apply_fields(record, fields)
                except ValueError as exc:
                    call.reject(InvalidArgument(str(exc)))
                    return
                self.database.save(record, saved)

            call.dispatch(merge)

        self.database.fetch(RecordID(record_name), fetched)

    def delete_record(self, call: PluginCall):
        record_name = call.get_string("recordId")
        if not record_name:
            call.reject(InvalidArgument("Must provide recordId"))
            return

        def deleted(deleted_id, error):
            def finish():
                if error is not None:
                    call.reject(ExternalOperationFailed(f"Error deleting record: {error.description}"))
                    return
                if deleted_id is not None:
                    call.resolve({"deletedRecordID": deleted_id.record_name})
                else:
                    call.reject(UnknownFailure("Failed to delete record for unknown reasons"))

            call.dispatch(finish)

        self.database.delete(RecordID(record_name), deleted)
