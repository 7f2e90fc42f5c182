from typing import Literal

ProjectStatusName = Literal["Created", "Pending", "Under_Review", "Accepted", "Refused", "Cancelled"]
ProcedureType = Literal["SID", "STAR", "APPROACH", "DEPARTURE", "ARRIVAL"]
Severity = Literal["Critical", "High", "Medium", "Low", "Informational"]
