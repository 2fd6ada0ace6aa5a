"""
Libvirt error handling module.

libvirt prints its errors to stderr unless a handler is registered. The
handler below sends them to the log file instead, so the terminal only shows
the categorized messages of the CLI.
"""

import logging

import libvirt

_registered = False


def libvirt_error_handler(ctx, error):  # pylint: disable=unused-argument
    """
    Log a libvirt error tuple (code, domain, message, level, ...).
    """
    code = error[0] if len(error) > 0 else 0
    domain = error[1] if len(error) > 1 else 0
    message = error[2] if len(error) > 2 else "Unknown error message"
    level = error[3] if len(error) > 3 else libvirt.VIR_ERR_ERROR

    if level == libvirt.VIR_ERR_WARNING:
        log_level = logging.WARNING
    elif level == libvirt.VIR_ERR_ERROR:
        log_level = logging.ERROR
    else:
        log_level = logging.INFO

    logging.log(log_level, "libvirt error: code=%s, domain=%s, message='%s'", code, domain, message)


def register_error_handler():
    """
    Registers the libvirt error handler once per process.
    """
    global _registered
    if _registered:
        return
    libvirt.registerErrorHandler(f=libvirt_error_handler, ctx=None)
    _registered = True
    logging.info("Registered libvirt error handler")
