"""
Mail signature feature.

Locates the mail client's signatures folder, reads its catalog and payload
files (raw HTML or web archives), converts between HTML and rich text, and
writes edits back atomically while keeping the files locked against the mail
client's own sync.

Entry points: logic.session.SignatureSession, logic.signature_repository.SignatureRepository,
logic.signature_worker.SignatureWorker and gui.directory_chooser.
"""
