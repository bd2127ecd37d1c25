class FaultLogError(Exception):
    """Base class for every error raised by the fault log core."""


class ValidationError(FaultLogError):
    pass


class EmptyPhotoSet(ValidationError):
    def __init__(self):
        super().__init__("Aggiungi almeno una foto")


class EmptyComment(ValidationError):
    def __init__(self):
        super().__init__("Il commento non può essere vuoto")


class EmptyClosingComment(ValidationError):
    def __init__(self):
        super().__init__("Inserisci un commento di chiusura prima di completare la segnalazione")


class InvalidSite(ValidationError):
    def __init__(self, site):
        super().__init__(f"Cantiere sconosciuto: {site!r}")
        self.site = site


class InvalidState(FaultLogError):
    def __init__(self, report_id, status, operation):
        super().__init__(f"{operation} non consentito: segnalazione {report_id} è {status}")
        self.report_id = report_id
        self.status = status
        self.operation = operation


class NotFound(FaultLogError):
    def __init__(self, report_id):
        super().__init__(f"Segnalazione {report_id} non trovata")
        self.report_id = report_id


class ImageDecodeError(FaultLogError):
    pass


class SensorUnavailable(FaultLogError):
    pass


class ExportDependencyError(FaultLogError):
    def __init__(self, format, library):
        super().__init__(f"Export {format} non disponibile: installa {library}")
        self.format = format
        self.library = library


class StorageError(FaultLogError):
    pass
