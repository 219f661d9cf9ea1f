class GlobalMessages:
    # Auth Messages
    INVALID_CREDENTIALS = "Could not validate credentials. Please log in again."
    ROLE_NOT_ALLOWED = "Your account is not allowed to perform this action."

    # Appointment Messages
    APPOINTMENT_BOOKED = "Appointment booked successfully."
    APPOINTMENT_CANCELLED = "Appointment cancelled successfully."
    APPOINTMENT_DELETED = "Appointment deleted."
    APPOINTMENT_ALREADY_ACCEPTED = "This appointment has already been accepted by another rider."
    APPOINTMENT_CLOSED = "This appointment is already {status}."

    # Ride Messages
    RIDE_ACCEPTED = "Ride accepted."
    RIDE_NOT_YOURS = "You are not a party to this ride."
    RIDER_ONLY = "Only the assigned rider can update the ride stage."
    RIDE_CHANGED = "The ride was updated by someone else. Refresh and try again."
    RIDE_CANCELLED = "This ride has been cancelled."
    RIDE_NOT_RETURNING = "A ride can only be marked completed once it is returning."
    WAITING_RIDER_ONLY = "Only the rider can record waiting time."
    WAITING_NEGATIVE = "Waiting minutes cannot be negative."
    WAITING_AFTER_CONFIRMATION = "Waiting time can only be reported with the rider's first confirmation."
    COMPLETION_RECORDED = "Completion recorded. Waiting for the other party to confirm."
    COMPLETION_FINALIZED = "Ride completed. Invoice generated."
    COMPLETION_ALREADY_FINALIZED = "Ride already completed."

    # Notification titles
    RIDE_STARTING_TITLE = "Ride Starting"
    RIDE_COMPLETED_TITLE = "Ride Completed"
    RIDE_CANCELLED_TITLE = "Ride Cancelled"
