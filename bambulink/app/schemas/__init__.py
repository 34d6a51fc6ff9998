from bambulink.app.schemas.report import (
    GcodeLine,
    Info,
    McPrint,
    ModuleVersion,
    OtherPrintCommand,
    Print,
    PrintCommand,
    PrintControl,
    ProjectFile,
    PushStatus,
    Report,
    decode_report,
    encode_report,
)
from bambulink.app.schemas.command import Request
